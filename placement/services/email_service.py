"""Outbound email through the Mailgun HTTP API."""

import logging
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import httpx
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from placement.config import Settings, settings as default_settings
from placement.core.errors import FieldError, NotFoundError, ValidationFailed
from placement.models import NotificationPreference, User
from placement.schemas.email import EmailResult
from placement.utils import email_templates
from placement.utils.constants import EMAIL_CHANNEL, EMAIL_TYPES
from placement.utils.helpers import as_uuid, extract_email_domain, normalize_recipients
from placement.utils.validators import validate_email

logger = logging.getLogger(__name__)

US_BASE_URL = "https://api.mailgun.net"
EU_BASE_URL = "https://api.eu.mailgun.net"


class MailgunError(Exception):
    """Non-2xx response from the Mailgun API."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Mailgun responded with {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


class EmailSender:
    """Renders templates, honours opt-outs and delivers through Mailgun.

    ``send`` never raises; the outcome is reported as an ``EmailResult``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.transport = transport

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        to: Union[str, List[str], None],
        template_key: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        user_id: Any = None,
        email_type: Optional[str] = None,
    ) -> EmailResult:
        recipients = normalize_recipients(to)
        if not recipients:
            logger.info(f"Skipping '{template_key}' email: no recipients")
            return EmailResult(status="skipped", reason="no_recipients")

        if not self.settings.EMAIL_ENABLED:
            logger.info(f"EMAIL_ENABLED=false, skipping '{template_key}' email to {recipients}")
            return EmailResult(status="skipped", reason="disabled")

        if user_id is not None and email_type and not await self.should_send(user_id, email_type):
            logger.info(f"Recipient opted out of '{email_type}' emails, skipping {recipients}")
            return EmailResult(status="skipped", reason="opted_out")

        problem = self._config_problem()
        if problem:
            logger.error(f"Unable to send email: {problem}")
            return EmailResult(status="error", reason="misconfigured")

        try:
            rendered = email_templates.render(template_key, data)
        except KeyError as e:
            logger.error(f"Unable to render email: {e}")
            return EmailResult(status="error", reason="unknown_template")

        payload = self._build_payload(recipients, rendered)
        base_url = self.settings.MAILGUN_API_URL

        try:
            await self._send_with_retry(base_url, payload)
        except MailgunError as e:
            error: Exception = e
            fallback = self._fallback_base_url(base_url) if e.status_code in (401, 403) else None
            if fallback:
                try:
                    await self._send_with_retry(fallback, payload)
                    logger.info(f"Email sent using Mailgun regional fallback {fallback} to {recipients}")
                    return EmailResult(status="success", fallback_base_url=fallback)
                except (MailgunError, httpx.HTTPError) as fallback_error:
                    error = fallback_error
            if isinstance(error, MailgunError) and error.status_code in (401, 403):
                logger.error(
                    "Mailgun authorization failed. Verify MAILGUN_API_KEY, MAILGUN_DOMAIN, "
                    "MAILGUN_FROM_EMAIL and MAILGUN_REGION/MAILGUN_BASE_URL."
                )
            logger.error(f"Failed to send '{template_key}' email to {recipients}: {error}")
            return EmailResult(status="error", reason=_reason(error))
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{template_key}' email to {recipients}: {e}")
            return EmailResult(status="error", reason="transport_error")

        logger.info(f"Email '{rendered['subject']}' sent to {recipients}")
        return EmailResult(status="success")

    def _config_problem(self) -> Optional[str]:
        s = self.settings
        if not (s.MAILGUN_API_KEY and s.MAILGUN_DOMAIN and s.MAILGUN_FROM_EMAIL):
            return "Mailgun configuration incomplete"
        if extract_email_domain(s.MAILGUN_FROM_EMAIL) != s.MAILGUN_DOMAIN.strip().lower():
            return "MAILGUN_FROM_EMAIL domain must match MAILGUN_DOMAIN"
        return None

    def _unsubscribe_url(self, email: str) -> Optional[str]:
        base = self.settings.APP_BASE_URL.rstrip("/")
        if not base or not email:
            return None
        return f"{base}/unsubscribe?email={quote(email, safe='')}"

    def _build_payload(self, recipients: List[str], rendered: Dict[str, str]) -> Dict[str, Any]:
        unsubscribe_url = self._unsubscribe_url(recipients[0])
        placeholder = email_templates.UNSUBSCRIBE_PLACEHOLDER
        replacement = unsubscribe_url or "#"
        payload: Dict[str, Any] = {
            "from": self.settings.MAILGUN_FROM_EMAIL,
            "to": recipients,
            "subject": rendered["subject"],
            "html": rendered["html"].replace(placeholder, replacement),
            "text": rendered["text"].replace(placeholder, replacement),
        }
        if unsubscribe_url:
            payload["h:List-Unsubscribe"] = f"<{unsubscribe_url}>"
        return payload

    def _fallback_base_url(self, current: str) -> Optional[str]:
        # An explicit base URL is never second-guessed
        if self.settings.MAILGUN_BASE_URL:
            return None
        return US_BASE_URL if "api.eu.mailgun.net" in current else EU_BASE_URL

    def _is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, MailgunError):
            return exc.status_code not in self.settings.EMAIL_NON_RETRYABLE_STATUSES
        return isinstance(exc, httpx.TransportError)

    async def _send_with_retry(self, base_url: str, payload: Dict[str, Any]) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.EMAIL_MAX_RETRIES),
            wait=wait_exponential(multiplier=self.settings.EMAIL_RETRY_DELAY_SECONDS, max=10),
            retry=retry_if_exception(self._is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._post(base_url, payload)

    async def _post(self, base_url: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(
            timeout=self.settings.EMAIL_TIMEOUT_SECONDS,
            auth=("api", self.settings.MAILGUN_API_KEY),
            transport=self.transport,
        ) as client:
            response = await client.post(f"{base_url}/v3/{self.settings.MAILGUN_DOMAIN}/messages", data=payload)
        if response.status_code >= 400:
            raise MailgunError(response.status_code, response.text)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def should_send(self, user_id: Any, email_type: str) -> bool:
        """False only when the user explicitly opted out; lookup failures allow sending."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(NotificationPreference.opted_out).where(
                        NotificationPreference.user_id == as_uuid(user_id),
                        NotificationPreference.channel == EMAIL_CHANNEL,
                        NotificationPreference.email_type == email_type,
                    )
                )
                opted_out = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read notification preferences for {user_id}: {e}")
            return True
        return opted_out is not True

    async def set_preference(self, user_id: Any, email_type: str, opted_out: bool) -> None:
        if email_type not in EMAIL_TYPES:
            raise ValidationFailed([FieldError("email_type", f"Email type must be one of: {', '.join(EMAIL_TYPES)}")])
        async with self.session_factory() as session:
            async with session.begin():
                await _upsert_preference(session, as_uuid(user_id), email_type, opted_out)

    async def unsubscribe_all(self, email: str) -> int:
        """Opt the user with this address out of every email type."""
        email = (email or "").strip().lower()
        if not validate_email(email):
            raise ValidationFailed([FieldError("email", "Invalid email address")])
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(select(User).where(func.lower(User.email) == email))
                user = result.scalar_one_or_none()
                if user is None:
                    raise NotFoundError("User", email)
                for email_type in EMAIL_TYPES:
                    await _upsert_preference(session, user.id, email_type, True)
        logger.info(f"User {user.id} unsubscribed from all emails")
        return len(EMAIL_TYPES)


async def _upsert_preference(session: AsyncSession, user_id: Any, email_type: str, opted_out: bool) -> None:
    result = await session.execute(
        select(NotificationPreference).where(
            NotificationPreference.user_id == user_id,
            NotificationPreference.channel == EMAIL_CHANNEL,
            NotificationPreference.email_type == email_type,
        )
    )
    preference = result.scalar_one_or_none()
    if preference is None:
        session.add(
            NotificationPreference(user_id=user_id, channel=EMAIL_CHANNEL, email_type=email_type, opted_out=opted_out)
        )
    else:
        preference.opted_out = opted_out


def _reason(error: Exception) -> str:
    if isinstance(error, MailgunError):
        return f"provider_status_{error.status_code}"
    return "transport_error"
