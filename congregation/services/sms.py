"""Outbound text messages through the Twilio REST API."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://api.twilio.com/2010-04-01'
MAX_BODY_LENGTH = 1600
MAX_BULK_MESSAGES = 50
MAX_BULK_DELAY_MS = 1000
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


class SmsError(Exception):
    """Raised when a message request is invalid or cannot be performed."""


class SmsNotConfiguredError(SmsError):
    """Raised when Twilio credentials are missing."""


@dataclass
class SmsResult:
    success: bool
    message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    http_status: int = 200

    def to_dict(self) -> Dict[str, Any]:
        payload = {'success': self.success}
        if self.message_id:
            payload['message_id'] = self.message_id
        if self.status:
            payload['status'] = self.status
        if self.error:
            payload['error'] = self.error
        return payload


@dataclass
class BulkSmsResult:
    total: int
    results: List[SmsResult] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def success(self) -> bool:
        return self.successful == self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'results': [result.to_dict() for result in self.results],
        }


def phone_digits(phone: Any) -> str:
    return re.sub(r'\D', '', str(phone or ''))


def is_valid_phone(phone: Any) -> bool:
    return 10 <= len(phone_digits(phone)) <= 15


def format_phone_number(phone: str) -> str:
    """Return ``phone`` in E.164 form, assuming North America for 10 digits."""

    digits = phone_digits(phone)
    if len(digits) == 10:
        return f'+1{digits}'
    if len(digits) == 11 and digits.startswith('1'):
        return f'+{digits}'
    return f'+{digits}'


def clean_body(body: Any) -> str:
    text = _CONTROL_CHARS.sub('', str(body or '')).strip()
    return text[:MAX_BODY_LENGTH]


class TwilioClient:
    """Small wrapper around the Messages resource of the Twilio API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (account_sid, auth_token)
        self.session.headers.update({'Accept': 'application/json'})
        self._sleep = sleep

    @classmethod
    def from_settings(cls, session: Optional[requests.Session] = None) -> 'TwilioClient':
        return cls(
            account_sid=getattr(settings, 'TWILIO_ACCOUNT_SID', ''),
            auth_token=getattr(settings, 'TWILIO_AUTH_TOKEN', ''),
            from_number=getattr(settings, 'TWILIO_FROM_NUMBER', ''),
            base_url=getattr(settings, 'TWILIO_BASE_URL', DEFAULT_BASE_URL),
            timeout=getattr(settings, 'TWILIO_HTTP_TIMEOUT', 30),
            session=session,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise SmsNotConfiguredError('SMS service not configured')

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"

    def _deliver(self, to: str, body: str) -> SmsResult:
        data = {'To': format_phone_number(to), 'From': self.from_number, 'Body': body}
        try:
            response = self.session.post(self.messages_url, data=data, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("SMS request to %s failed: %s", data['To'], exc)
            return SmsResult(success=False, error='Request failed', http_status=500)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            error = payload.get('message') or 'Failed to send SMS'
            logger.warning("Twilio rejected message to %s (%s): %s", data['To'], response.status_code, error)
            return SmsResult(success=False, error=error, http_status=response.status_code)
        logger.info("SMS %s queued for %s", payload.get('sid'), data['To'])
        return SmsResult(success=True, message_id=payload.get('sid'), status=payload.get('status'))

    def send(self, to: str, body: str) -> SmsResult:
        """Send one message.  Invalid input raises :class:`SmsError`."""

        self._require_configured()
        if not to or not body:
            raise SmsError('Recipient (to) and message are required')
        if not is_valid_phone(to):
            raise SmsError('Invalid phone number format')
        text = clean_body(body)
        if not text:
            raise SmsError('Message is required')
        return self._deliver(to, text)

    def send_bulk(self, messages: Iterable[Dict[str, Any]], delay_ms: Optional[int] = None) -> BulkSmsResult:
        """Send up to 50 messages, pausing ``delay_ms`` between them.

        Each message is validated on its own; a bad entry is reported in the
        results without stopping the batch.
        """

        self._require_configured()
        messages = list(messages or [])
        if not messages:
            raise SmsError('Messages array is required')
        if len(messages) > MAX_BULK_MESSAGES:
            raise SmsError(f'Maximum {MAX_BULK_MESSAGES} messages per batch')
        if delay_ms is None:
            delay_ms = getattr(settings, 'SMS_BULK_DELAY_MS', 200)
        delay = min(max(int(delay_ms), 0), MAX_BULK_DELAY_MS) / 1000.0

        outcome = BulkSmsResult(total=len(messages))
        sent_any = False
        for message in messages:
            if not isinstance(message, dict):
                outcome.results.append(SmsResult(success=False, error='Missing to or message'))
                continue
            to = message.get('to')
            body = message.get('message')
            if not to or not body:
                outcome.results.append(SmsResult(success=False, error='Missing to or message'))
                continue
            if not is_valid_phone(to):
                outcome.results.append(SmsResult(success=False, error='Invalid phone number'))
                continue
            text = clean_body(body)
            if not text:
                outcome.results.append(SmsResult(success=False, error='Invalid message'))
                continue
            if sent_any and delay:
                self._sleep(delay)
            outcome.results.append(self._deliver(to, text))
            sent_any = True

        logger.info(
            "Bulk SMS finished: %d of %d delivered",
            outcome.successful,
            outcome.total,
        )
        return outcome

    def status(self, message_id: str) -> SmsResult:
        """Look up the delivery status of a previously sent message."""

        if not (self.account_sid and self.auth_token):
            raise SmsNotConfiguredError('SMS service not configured')
        message_id = str(message_id or '').strip()
        if not message_id:
            raise SmsError('A message identifier is required')
        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages/{message_id}.json"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("SMS status lookup for %s failed: %s", message_id, exc)
            return SmsResult(success=False, error='Failed to get message status', http_status=500)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            return SmsResult(
                success=False,
                error=payload.get('message') or 'Failed to get status',
                http_status=response.status_code,
            )
        return SmsResult(success=True, message_id=payload.get('sid'), status=payload.get('status'))
