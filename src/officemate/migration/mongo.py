"""One-off import of legacy MongoDB users into the relational store.

Legacy documents look like::

    {
        "_id": ObjectId(...),
        "phoneNumber": "9876543210",
        "email": "jane@acme.com",
        "firstName": "Jane",
        "lastName": "Doe",
        "phoneVerified": true,
        "emailVerified": true
    }

Older documents keep the flags in a nested ``verified`` object
(``{"phone": true, "email": false}``). Accounts are matched on the
normalised phone number, so re-running the import is safe.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.db.models import AccountStatus, UserAccount, UserProfile
from officemate.errors import CorporateEmailError, ValidationError
from officemate.validation import mask_phone_number, normalize_phone_number, validate_corporate_email

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


@dataclass
class MigrationReport:
    processed: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"processed={self.processed} imported={self.imported} "
            f"updated={self.updated} skipped={self.skipped} errors={len(self.errors)}"
        )


def _flag(document: dict, flat_key: str, nested_key: str) -> bool:
    if flat_key in document:
        return bool(document[flat_key])
    verified = document.get("verified")
    if isinstance(verified, dict):
        return bool(verified.get(nested_key))
    return False


def _doc_id(document: dict) -> str:
    return str(document.get("_id", "<no id>"))


def _text(document: dict, *keys: str) -> Optional[str]:
    """First non-empty value among ``keys``; anything but a string is invalid."""
    for key in keys:
        value = document.get(key)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string, got {type(value).__name__}")
        return value
    return None


class LegacyUserImporter:
    """Upserts ``UserAccount`` and ``UserProfile`` rows from legacy documents."""

    def __init__(
        self,
        mongo_collection: Optional[Collection],
        session: AsyncSession,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
    ):
        self.collection = mongo_collection
        self.session = session
        self.batch_size = batch_size
        self.dry_run = dry_run

    async def _fetch(self, query: Optional[dict]) -> list[dict]:
        # pymongo is blocking
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: list(self.collection.find(query or {}).batch_size(self.batch_size))
        )

    async def run(self, query: Optional[dict] = None) -> MigrationReport:
        """Import every document matching ``query`` from the collection."""
        documents = await self._fetch(query)
        logger.info(f"Fetched {len(documents)} legacy user documents")
        return await self.import_documents(documents)

    async def import_documents(self, documents: Iterable[dict]) -> MigrationReport:
        report = MigrationReport()
        for document in documents:
            report.processed += 1
            try:
                created = await self._import_one(document)
            except ValidationError as e:
                report.skipped += 1
                report.errors.append(f"{_doc_id(document)}: {e.message}")
                logger.warning(f"Skipping legacy user {_doc_id(document)}: {e.message}")
                continue

            if created:
                report.imported += 1
            else:
                report.updated += 1

            if report.processed % self.batch_size == 0:
                await self._checkpoint(report)

        await self._checkpoint(report)
        logger.info(f"Legacy user import finished: {report.summary()}")
        return report

    async def _checkpoint(self, report: MigrationReport) -> None:
        if self.dry_run:
            await self.session.rollback()
        else:
            await self.session.commit()
        logger.info(f"Migration progress: {report.summary()}")

    async def _import_one(self, document: dict) -> bool:
        """Upsert one legacy user; returns True when a new account was created."""
        phone = normalize_phone_number(_text(document, "phoneNumber", "phone"))
        raw_email = _text(document, "email")
        first_name = (_text(document, "firstName") or "").strip()
        last_name = (_text(document, "lastName") or "").strip()
        phone_verified = _flag(document, "phoneVerified", "phone")
        email_verified = _flag(document, "emailVerified", "email")

        email = None
        if raw_email:
            try:
                email = validate_corporate_email(raw_email)
            except CorporateEmailError as e:
                # Personal addresses are dropped; the user re-verifies a corporate one
                logger.info(f"Dropping email of legacy user {_doc_id(document)}: {e.message}")
        if email and await self._email_owner(email) not in (None, phone):
            raise ValidationError("Email already belongs to another account")

        result = await self.session.execute(select(UserAccount).where(UserAccount.phone_number == phone))
        account = result.scalar_one_or_none()
        created = account is None

        if account is None:
            account = UserAccount(phone_number=phone)
            self.session.add(account)

        account.phone_verified = bool(account.phone_verified) or phone_verified
        if email and not account.corporate_email:
            account.corporate_email = email
            account.email_verified = email_verified
        account.account_status = (
            AccountStatus.ACTIVE
            if account.phone_verified and account.email_verified and account.corporate_email
            else AccountStatus.PENDING_EMAIL
        )
        await self.session.flush()

        await self._upsert_profile(account, first_name, last_name)
        logger.debug(f"{'Imported' if created else 'Updated'} legacy user {mask_phone_number(phone)}")
        return created

    async def _email_owner(self, email: str) -> Optional[str]:
        result = await self.session.execute(
            select(UserAccount.phone_number).where(UserAccount.corporate_email == email)
        )
        return result.scalar_one_or_none()

    async def _upsert_profile(self, account: UserAccount, first_name: str, last_name: str) -> None:
        if not first_name or not last_name:
            return

        result = await self.session.execute(select(UserProfile).where(UserProfile.user_id == account.id))
        profile = result.scalar_one_or_none()
        if profile is None:
            self.session.add(
                UserProfile(user_id=account.id, first_name=first_name[:100], last_name=last_name[:100])
            )
            await self.session.flush()


def open_legacy_collection(url: str, database: str, collection: str) -> tuple[Any, Collection]:
    """Connect to MongoDB; returns the client (to close) and the collection."""
    client = MongoClient(url, serverSelectionTimeoutMS=5000)
    return client, client[database][collection]
