"""Storage stage: durable image upload and nonce-verified ownership transfer.

Two ownership regimes:
- authenticated: ``{owner_id}/{job_id}-{token}.png``, served by signed URL
- anonymous: ``public/{job_id}-{token}.png``, served by public URL and tracked
  by a FileOwnership record holding the SHA-256 digest of a random nonce.

The nonce is returned to the anonymous requester exactly once; presenting it
later moves the file into the claimant's prefix.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from colorpage.core.timezone import utcnow
from colorpage.models.file_ownership import FileOwnership
from colorpage.services.exceptions import OwnershipConflict, PersistenceError, StorageError
from colorpage.services.generation.image_generation import GeneratedImage

logger = structlog.get_logger()

PUBLIC_PREFIX = "public/"


class ObjectStorage(Protocol):
    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        ...

    async def download(self, url: str) -> bytes:
        ...

    async def move(self, from_path: str, to_path: str) -> None:
        ...

    def get_public_url(self, path: str) -> str:
        ...

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        ...


@dataclass
class StoredImage:
    path: str
    url: str
    ownership_nonce: Optional[str] = None


def hash_nonce(nonce: str) -> str:
    return hashlib.sha256(nonce.encode("utf-8")).hexdigest()


def build_storage_path(owner_id: Optional[str], job_id: UUID | str, token: str) -> str:
    """Deterministic, job-scoped path; ``token`` keeps retries from colliding."""
    prefix = owner_id if owner_id else PUBLIC_PREFIX.rstrip("/")
    return f"{prefix}/{job_id}-{token}.png"


class StorageStage:
    def __init__(self, storage: ObjectStorage, uow_factory, signed_url_ttl: int = 3600):
        self.storage = storage
        self.uow_factory = uow_factory
        self.signed_url_ttl = signed_url_ttl

    async def store(
        self, image: GeneratedImage, owner_id: Optional[str], job_id: UUID | str
    ) -> StoredImage:
        """Persist generated image bytes and return where they live.

        Raises:
            DownloadError: Image had only a URL and downloading it failed
            StorageError: Upload or URL signing failed
            PersistenceError: Ownership record could not be written
        """
        data = image.image_bytes
        if data is None:
            if not image.url:
                raise StorageError("Generated image has neither bytes nor URL")
            data = await self.storage.download(image.url)
        if not data:
            raise StorageError("Generated image is empty")

        path = build_storage_path(owner_id, job_id, secrets.token_hex(8))
        await self.storage.upload(path, data, "image/png")

        if owner_id:
            url = await self.storage.create_signed_url(path, self.signed_url_ttl)
            logger.info("storage.uploaded", path=path, owner_id=owner_id, size=len(data))
            return StoredImage(path=path, url=url)

        nonce = secrets.token_urlsafe(32)
        try:
            async with await self.uow_factory() as uow:
                await uow.file_ownerships.add(FileOwnership(path=path, nonce_hash=hash_nonce(nonce)))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record file ownership for {path}: {e}") from e

        logger.info("storage.uploaded", path=path, anonymous=True, size=len(data))
        return StoredImage(path=path, url=self.storage.get_public_url(path), ownership_nonce=nonce)

    async def associate_file_with_user(
        self, path: str, nonce: str, user_id: str, now: Optional[datetime] = None
    ) -> StoredImage:
        """Move an anonymous file into ``user_id``'s prefix after verifying the nonce.

        The claim is a conditional update (claimed_at IS NULL) committed only
        after the storage move succeeds, so a file can be claimed at most once.

        Raises:
            OwnershipConflict: Path not anonymous, unknown, already claimed, or
                nonce mismatch
            StorageError: The move or URL signing failed (the claim is rolled back)
        """
        now = now or utcnow()
        name = path[len(PUBLIC_PREFIX) :] if path.startswith(PUBLIC_PREFIX) else ""
        if not name or "/" in name or ".." in name:
            raise OwnershipConflict(f"Path {path!r} is not an anonymous upload")
        if not user_id:
            raise OwnershipConflict("A user id is required to claim a file")

        new_path = f"{user_id}/{name}"

        async with await self.uow_factory() as uow:
            record = await uow.file_ownerships.get_by_path(path)
            if record is None:
                raise OwnershipConflict(f"No ownership record for {path}")
            if record.is_claimed:
                raise OwnershipConflict(f"File {path} has already been claimed")
            if not hmac.compare_digest(record.nonce_hash, hash_nonce(nonce or "")):
                raise OwnershipConflict(f"Invalid ownership nonce for {path}")

            if not await uow.file_ownerships.claim(path, user_id, new_path, now):
                raise OwnershipConflict(f"File {path} has already been claimed")

            await self.storage.move(path, new_path)
            url = await self.storage.create_signed_url(new_path, self.signed_url_ttl)
            pages = await uow.pages.reassign_anonymous(path, new_path, user_id)
            jobs = await uow.generation_jobs.reassign_anonymous(path, new_path, user_id, url)

        logger.info(
            "storage.file_claimed", path=path, new_path=new_path, pages=pages, jobs=jobs
        )
        return StoredImage(path=new_path, url=url)
