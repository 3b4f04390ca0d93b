"""
ERP Gateway - Company Registry
===============================

What:  Read-only access to company credentials and user/company assignments.
Why:   The session mediator needs two answers from the back-office data:
       "what are this company's vendor credentials?" and "may this user work
       on this company?". This module is the boundary to that data.
How:   One instance per request, bound to that request's AsyncSession.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from erp_gateway.exceptions import GatewayError, NotFoundError
from erp_gateway.models.company import Company, UserCompany
from erp_gateway.schemas.vendor import CompanyCredentials

logger = logging.getLogger(__name__)


class CompanyRegistry:
    """Resolves CompanyCredentials and access rights from the database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_company_by_id(self, company_id: int) -> CompanyCredentials:
        """
        Load the vendor credentials of a company.

        Raises:
            NotFoundError: No company with this ID.
            GatewayError: The query itself failed (details logged only).
        """
        try:
            result = await self.db.execute(select(Company).where(Company.id == company_id))
            company = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load company %s: %s", company_id, str(e), exc_info=True)
            raise GatewayError(
                message="Company information could not be loaded. Please try again later.",
                context={"company_id": company_id},
            ) from e

        if company is None:
            raise NotFoundError(resource="company", resource_id=str(company_id))

        return CompanyCredentials(
            company_id=company.id,
            web_service_source_url=company.web_service_source,
            web_service_username=company.web_service_username,
            api_key=company.api_key,
            api_secret=company.api_secret,
            company_code=company.code,
        )

    async def user_may_access_company(self, user_id: int, company_id: int) -> bool:
        """
        True when the user has been assigned to the company.

        Raises:
            GatewayError: The query itself failed (details logged only).
        """
        try:
            result = await self.db.execute(
                select(UserCompany.company_id).where(
                    UserCompany.user_id == user_id,
                    UserCompany.company_id == company_id,
                )
            )
            assigned = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to check access of user %s to company %s: %s",
                user_id,
                company_id,
                str(e),
                exc_info=True,
            )
            raise GatewayError(
                message="Company access could not be checked. Please try again later.",
                context={"user_id": user_id, "company_id": company_id},
            ) from e

        return assigned is not None
