"""
Email notification channel using MailDiver API.

Provides email notifications for archiving runs with:
- MailDiver API integration
- Secure API key management via environment variables
- Email templates for success and failure reports
- Rate limiting and retry of transient connection errors
"""

import asyncio
import html
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

import aiohttp
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from logarchive.errors import NotifyError
from logarchive.monitoring.notifications.base import NotificationTransport
from logarchive.storage.archive_models import SUBJECT_FAILURE

logger = structlog.get_logger(__name__)


@dataclass
class EmailTemplate:
    """Email template configuration."""
    html_template: str
    text_template: str


class EmailNotificationChannel(NotificationTransport):
    """
    Email notification channel using MailDiver API.

    Handles email delivery of run reports with proper authentication,
    rate limiting, and error handling.
    """

    name = "maildiver"

    def __init__(self,
                 api_key: Optional[str] = None,
                 from_email: str = "alerts@mail.wraith-protocol.com",
                 api_url: str = "https://api.maildiver.com/v1/messages",
                 rate_limit_per_minute: int = 60):
        """
        Initialize email notification channel.

        Args:
            api_key: MailDiver API key (defaults to MAILDRIVER_API_KEY env var)
            from_email: Sender email address
            api_url: MailDiver messages endpoint
            rate_limit_per_minute: Rate limit for email sending
        """
        self.api_key = api_key or os.getenv('MAILDRIVER_API_KEY')
        if not self.api_key:
            raise ValueError("MAILDRIVER_API_KEY environment variable is required")

        self.from_email = from_email
        self.api_url = api_url
        self.rate_limit_per_minute = rate_limit_per_minute

        # Rate limiting
        self._sent_emails = []
        self._last_cleanup = time.time()

        self._templates = self._initialize_templates()

        logger.info("Email notification channel initialized",
                    from_email=from_email,
                    rate_limit=rate_limit_per_minute)

    def _initialize_templates(self) -> Dict[str, EmailTemplate]:
        """Initialize email templates for success and failure reports."""
        return {
            'failure': EmailTemplate(
                html_template="""
                <html>
                <body style="font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5;">
                    <div style="max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px;">
                        <div style="background-color: #dc3545; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
                            <h1 style="margin: 0; font-size: 24px;">{subject}</h1>
                        </div>
                        <div style="padding: 20px;">
                            <pre style="white-space: pre-wrap;">{body}</pre>
                            <p style="font-size: 14px; color: #666;">Sent by logarchive at {timestamp}</p>
                        </div>
                    </div>
                </body>
                </html>
                """,
                text_template="{subject}\n\n{body}\n\nSent by logarchive at {timestamp}\n"
            ),
            'success': EmailTemplate(
                html_template="""
                <html>
                <body style="font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5;">
                    <div style="max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px;">
                        <div style="background-color: #28a745; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
                            <h1 style="margin: 0; font-size: 24px;">{subject}</h1>
                        </div>
                        <div style="padding: 20px;">
                            <pre style="white-space: pre-wrap;">{body}</pre>
                            <p style="font-size: 14px; color: #666;">Sent by logarchive at {timestamp}</p>
                        </div>
                    </div>
                </body>
                </html>
                """,
                text_template="{subject}\n\n{body}\n\nSent by logarchive at {timestamp}\n"
            ),
        }

    def _get_template(self, subject: str) -> EmailTemplate:
        """Pick the failure template for failure subjects."""
        if subject == SUBJECT_FAILURE or 'fail' in subject.lower():
            return self._templates['failure']
        return self._templates['success']

    def _cleanup_rate_limit(self) -> None:
        """Clean up old entries from rate limiting."""
        current_time = time.time()
        if current_time - self._last_cleanup > 60:
            cutoff_time = current_time - 60
            self._sent_emails = [t for t in self._sent_emails if t > cutoff_time]
            self._last_cleanup = current_time

    def _check_rate_limit(self) -> bool:
        """Check if we're within rate limits."""
        self._cleanup_rate_limit()
        return len(self._sent_emails) < self.rate_limit_per_minute

    def build_payload(self, address: str, subject: str, body: str) -> Dict:
        template = self._get_template(subject)
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        return {
            'from': {
                'email': self.from_email,
                'name': 'logarchive'
            },
            'to': [
                {
                    'email': address,
                    'name': address
                }
            ],
            'subject': subject,
            'html': template.html_template.format(subject=html.escape(subject), body=html.escape(body),
                                                 timestamp=timestamp),
            'text': template.text_template.format(subject=subject, body=body, timestamp=timestamp),
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
        reraise=True
    )
    async def _post(self, payload: Dict) -> Tuple[int, str]:
        """POST a message to MailDiver with retry logic."""
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.api_url,
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=30)
            ) as response:
                return response.status, await response.text()

    async def send(self, address: str, subject: str, body: str) -> None:
        """
        Send a run report via MailDiver API.

        Raises:
            NotifyError: On rate limiting, timeouts or a non-200 response.
        """
        if not self._check_rate_limit():
            logger.warning("Rate limit exceeded for email notifications")
            raise NotifyError("Email rate limit exceeded")

        payload = self.build_payload(address, subject, body)
        try:
            status, error_text = await self._post(payload)
        except asyncio.TimeoutError:
            logger.error("Email notification timeout", recipient=address)
            raise NotifyError("Email notification timed out")
        except aiohttp.ClientError as e:
            logger.error("Error sending email", recipient=address, error=str(e))
            raise NotifyError("Email delivery failed", detail=str(e))

        if status != 200:
            logger.error("Failed to send email",
                         recipient=address,
                         status_code=status,
                         error=error_text)
            raise NotifyError(f"MailDiver returned HTTP {status}", detail=error_text)

        self._sent_emails.append(time.time())
        logger.info("Email sent successfully", recipient=address, subject=subject)
