"""Certificate issuance and public verification.

Eligibility is decided here, before the issuer runs:

  course exists                       404 course_not_found
  caller entitled (admins exempt)     403 no_entitlement
  course has at least one module      400 course_without_modules
  every module passed or completed    403 course_not_completed
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from lms.api.dependencies import require_user
from lms.api.ratelimit import SUBMIT_LIMIT, require_rate_limit
from lms.api.schemas import ApiModel, SessionDep
from lms.core.errors import AccessDenied, IntegrityRuleViolation, NotFound
from lms.models.certificate import CertificateIssue, issued_at_iso
from lms.models.principal import Principal
from lms.repos.catalog_repo import CatalogRepo
from lms.services.certificate_issuer import CertificateIssuer, verify_url
from lms.services.entitlements import EntitlementResolver
from lms.services.progress_ledger import ProgressLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/certificates", tags=["certificates"])


class CertificateOut(ApiModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    serial: str
    hash: str
    issued_at: str
    full_name: str | None
    pdf_url: str
    verify_url: str


class VerificationOut(ApiModel):
    valid: bool
    serial: str
    hash: str
    course_id: UUID
    course_title: str | None
    full_name: str | None
    issued_at: str


@router.post(
    "/{course_id}/issue",
    response_model=CertificateOut,
    dependencies=[Depends(require_rate_limit(SUBMIT_LIMIT))],
)
async def issue_certificate(
    course_id: UUID,
    session: SessionDep,
    principal: Annotated[Principal, Depends(require_user)],
    reissue: bool = False,
    keep_issued_at: Annotated[bool, Query(alias="keepIssuedAt")] = False,
    full_name: Annotated[str | None, Query(alias="fullName", max_length=200)] = None,
) -> CertificateOut:
    if await CatalogRepo(session).get_course(course_id) is None:
        raise NotFound("course_not_found")

    if not principal.is_admin:
        entitled = await EntitlementResolver(session).is_entitled(
            principal.user_id, course_id=course_id
        )
        if not entitled:
            raise AccessDenied("no_entitlement")

    state = await ProgressLedger(session).completion_state(principal.user_id, course_id)
    if state == "no_modules":
        raise IntegrityRuleViolation("course_without_modules")
    if state != "complete":
        logger.info(
            "Certificate refused, course incomplete user=%s course=%s",
            principal.user_id,
            course_id,
        )
        raise AccessDenied("course_not_completed")

    issue = await CertificateIssuer(session).issue(
        principal.user_id,
        course_id,
        full_name=full_name,
        reissue=reissue,
        keep_issued_at=keep_issued_at,
    )
    return _certificate_out(issue)


@router.get("/verify/{serial}", response_model=VerificationOut)
async def verify_by_serial(serial: str, session: SessionDep) -> VerificationOut:
    issue = await CertificateIssuer(session).verify_serial(serial)
    return await _verification_out(session, issue)


@router.get("/verify", response_model=VerificationOut)
async def verify_by_hash(
    session: SessionDep,
    serial_hash: Annotated[str, Query(alias="hash", min_length=64, max_length=64)],
) -> VerificationOut:
    issue = await CertificateIssuer(session).verify_hash(serial_hash)
    return await _verification_out(session, issue)


def _certificate_out(issue: CertificateIssue) -> CertificateOut:
    return CertificateOut(
        id=issue.id,
        user_id=issue.user_id,
        course_id=issue.course_id,
        serial=issue.serial,
        hash=issue.serial_hash,
        issued_at=issued_at_iso(issue.issued_at),
        full_name=issue.full_name,
        pdf_url=issue.asset_url,
        verify_url=verify_url(issue.serial),
    )


async def _verification_out(session, issue: CertificateIssue) -> VerificationOut:
    course = await CatalogRepo(session).get_course(issue.course_id)
    return VerificationOut(
        valid=True,
        serial=issue.serial,
        hash=issue.serial_hash,
        course_id=issue.course_id,
        course_title=course.title if course is not None else None,
        full_name=issue.full_name,
        issued_at=issued_at_iso(issue.issued_at),
    )
