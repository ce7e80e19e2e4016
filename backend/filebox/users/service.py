"""User service: register, verify credentials, send welcome email."""

import logging
from email.message import EmailMessage
from typing import Optional

import aiosmtplib
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from filebox.auth.passwords import hash_password, verify_password
from filebox.config import Settings
from filebox.errors import duplicate_email, missing_email, missing_password
from filebox.pipeline.queue import JobQueue
from filebox.users.models import User

log = logging.getLogger(__name__)


def smtp_configured(settings: Settings) -> bool:
    return bool(settings.smtp_host and settings.smtp_from)


async def send_welcome_email(settings: Settings, to_email: str) -> None:
    """Send the welcome message. Raises on SMTP failure."""
    if not smtp_configured(settings):
        raise RuntimeError("SMTP not configured (FILEBOX_SMTP_HOST / SMTP_FROM)")
    msg = EmailMessage()
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    msg["Subject"] = "Welcome to Filebox"
    msg.set_content(f"""Hello,

Your Filebox account {to_email} is ready. Log in with your email and password
to start uploading files.

Best regards,
Filebox
""")
    await aiosmtplib.send(
        msg,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user or None,
        password=settings.smtp_password or None,
        use_tls=settings.smtp_port == 465,
        start_tls=settings.smtp_port == 587,
    )


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Return user by email or None."""
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """Return user by id or None."""
    return await session.get(User, user_id)


async def verify_credentials(session: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the user if email and password match, else None.

    Unknown email and wrong password give the same result.
    """
    if not email or not password:
        return None
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


async def register_user(
    session: AsyncSession,
    welcome_queue: JobQueue,
    email: Optional[str],
    password: Optional[str],
) -> User:
    """
    Create a new user and enqueue the welcome job.
    Raises ValidationError (MissingEmail, MissingPassword, DuplicateEmail) before any write.
    """
    if not email:
        raise missing_email()
    if not password:
        raise missing_password()
    existing = await get_user_by_email(session, email)
    if existing:
        log.info("Registration rejected, email exists: %s", email)
        raise duplicate_email()
    user = User(email=email, password_hash=hash_password(password))
    session.add(user)
    # Commit before enqueue so the worker can see the row
    try:
        await session.commit()
    except IntegrityError:
        # Concurrent registration with the same email
        await session.rollback()
        raise duplicate_email()
    await welcome_queue.enqueue({"user_id": user.id})
    log.info("Registered user id=%s email=%s", user.id, email)
    return user
