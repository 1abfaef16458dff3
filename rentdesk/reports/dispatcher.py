"""
Monthly report run: resolve the period, aggregate, render, send, record.

A run moves through

    Idle -> ValidatingConfig -> Aggregating -> Rendering -> Sending -> Done

Missing configuration ends the run at ValidatingConfig as a no-op. An
exception while aggregating or rendering goes through LoggingFailure, which
appends a single failed audit entry. Individual recipients failing during
Sending do not stop the others; the run still reaches Done.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

import structlog

from rentdesk.core.config import ReportSettings
from rentdesk.core.database import db_manager
from rentdesk.core.exceptions import ReportConfigurationError
from rentdesk.metrics.metrics import MetricsCollector, get_metrics
from rentdesk.models.documents import EmailLogEntry, EmailStatus
from rentdesk.reports.details import ReportDetails, build_details
from rentdesk.reports.period import PeriodRange, previous_month_range
from rentdesk.reports.render import RenderedReport, render_monthly_report
from rentdesk.reports.summary import SUMMARY_REPORT_ID, SummaryReportData, get_report_template, summarize
from rentdesk.services.email_log import EmailLogService
from rentdesk.services.email_services import EmailMessage, EmailService, MailAttachment
from rentdesk.services.landlord_store import LandlordStore, MongoLandlordStore, load_snapshot
from rentdesk.utils.date_helper import utc_now
from rentdesk.utils.formatters import mask_email, parse_recipients

logger = structlog.get_logger(__name__)

FAILURE_CONTENT = "Failed to render or send email. See logs for details."


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING_CONFIG = "validating_config"
    AGGREGATING = "aggregating"
    RENDERING = "rendering"
    SENDING = "sending"
    LOGGING_FAILURE = "logging_failure"
    DONE = "done"


@dataclass
class PreparedReport:
    period: PeriodRange
    summary: SummaryReportData
    details: ReportDetails
    rendered: RenderedReport


@dataclass
class ReportRunResult:
    landlord_id: str
    period: PeriodRange
    recipients: List[str] = field(default_factory=list)
    sent: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    error: Optional[str] = None
    states: List[RunState] = field(default_factory=list)

    @property
    def state(self) -> RunState:
        return self.states[-1] if self.states else RunState.IDLE

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        if self.failed:
            return "partial"
        return "sent"


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class MonthlyReportDispatcher:
    """
    Runs the monthly report for the configured landlord.

    Args:
        store: read port for leases, payments and inventory
        email_service: outbound transport
        email_log: audit trail writer
        settings: report settings; read from the environment per run when omitted
        clock: wall clock used for lease expirations
    """

    def __init__(
        self,
        store: LandlordStore,
        email_service: EmailService,
        email_log: EmailLogService,
        settings: Optional[ReportSettings] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.email_service = email_service
        self.email_log = email_log
        self._settings = settings
        self.metrics = metrics or get_metrics()
        self.clock = clock

    @staticmethod
    def validate_config(settings: ReportSettings) -> Tuple[str, str]:
        if not settings.recipients or not settings.landlord_id:
            raise ReportConfigurationError(
                "Missing required config. Set both REPORTS_TO and REPORTS_LANDLORD."
            )
        return settings.recipients, settings.landlord_id

    async def aggregate(self, landlord_id: str, period: PeriodRange) -> Tuple[SummaryReportData, ReportDetails]:
        snapshot = await load_snapshot(self.store, landlord_id)
        summary = summarize(snapshot, period)
        details = build_details(snapshot, period, now=self.clock())
        return summary, details

    async def prepare(self, landlord_id: str, reference: Optional[datetime] = None) -> PreparedReport:
        """Aggregate and render without sending anything"""
        period = previous_month_range(reference or self.clock())
        summary, details = await self.aggregate(landlord_id, period)
        rendered = render_monthly_report(period.label, summary, details)
        return PreparedReport(period=period, summary=summary, details=details, rendered=rendered)

    async def run(self, reference: Optional[datetime] = None) -> Optional[ReportRunResult]:
        """
        Execute one run. Never raises for configuration, data or delivery
        errors; returns None when the run was a no-op.
        """
        started = time.perf_counter()
        states = [RunState.IDLE, RunState.VALIDATING_CONFIG]
        settings = self._settings or ReportSettings.from_env()

        try:
            to, landlord_id = self.validate_config(settings)
        except ReportConfigurationError as e:
            logger.error(str(e))
            self.metrics.record_run("skipped")
            return None

        period = previous_month_range(reference or self.clock())
        result = ReportRunResult(landlord_id=landlord_id, period=period, states=states)
        log = logger.bind(landlord_id=landlord_id, period=period.label)

        try:
            states.append(RunState.AGGREGATING)
            summary, details = await self.aggregate(landlord_id, period)

            states.append(RunState.RENDERING)
            rendered = render_monthly_report(period.label, summary, details)

            recipients = parse_recipients(to)
            if not recipients:
                log.warning("REPORTS_TO contained no valid recipients after parsing")
                states.append(RunState.DONE)
                self.metrics.record_run("skipped")
                return None
            result.recipients = recipients

            states.append(RunState.SENDING)
            await self._send_all(result, rendered, details, settings)

        except Exception as e:
            states.append(RunState.LOGGING_FAILURE)
            result.error = _error_message(e)
            log.error(
                "Failed to send monthly summary report",
                to=[mask_email(r) for r in parse_recipients(to)],
                error=result.error,
            )
            await self._log_run_failure(landlord_id, to, period, result.error)

        states.append(RunState.DONE)
        self.metrics.record_run(result.status, time.perf_counter() - started)
        return result

    async def _deliver(self, landlord_id: str, recipient: str, rendered: RenderedReport, details: ReportDetails) -> str:
        await self.email_service.send_email(EmailMessage(
            to_email=recipient,
            subject=rendered.subject,
            html=rendered.html,
            attachments=[MailAttachment(filename=details.csv.filename, content=details.csv.content)],
        ))
        await self.email_log.log_email(landlord_id, EmailLogEntry(
            recipients=[recipient],
            subject=rendered.subject,
            content=rendered.html,
            status=EmailStatus.SENT,
            template_id=SUMMARY_REPORT_ID,
        ))
        return recipient

    async def _send_all(
        self,
        result: ReportRunResult,
        rendered: RenderedReport,
        details: ReportDetails,
        settings: ReportSettings,
    ) -> None:
        outcomes = await asyncio.gather(
            *(self._deliver(result.landlord_id, r, rendered, details) for r in result.recipients),
            return_exceptions=True,
        )

        for recipient, outcome in zip(result.recipients, outcomes):
            if isinstance(outcome, BaseException):
                result.failed.append((recipient, _error_message(outcome)))
                self.metrics.record_email("failed")
            else:
                result.sent.append(recipient)
                self.metrics.record_email("sent")

        if result.failed:
            logger.error(
                "Some recipients failed to receive the report",
                landlord_id=result.landlord_id,
                failed=[reason for _, reason in result.failed],
            )
            if settings.log_failed_recipients:
                for recipient, reason in result.failed:
                    await self._safe_log(result.landlord_id, EmailLogEntry(
                        recipients=[recipient],
                        subject=rendered.subject,
                        content=rendered.html,
                        status=EmailStatus.FAILED,
                        template_id=SUMMARY_REPORT_ID,
                        error=reason,
                    ))
        else:
            logger.info(
                "Monthly summary report sent successfully to all recipients",
                landlord_id=result.landlord_id,
                recipients=result.recipients,
                period=result.period.label,
            )

    async def _log_run_failure(self, landlord_id: str, to: str, period: PeriodRange, error: str) -> None:
        template = get_report_template(SUMMARY_REPORT_ID)
        await self._safe_log(landlord_id, EmailLogEntry(
            recipients=parse_recipients(to),
            subject=template.subject(period.label),
            content=FAILURE_CONTENT,
            status=EmailStatus.FAILED,
            template_id=template.id,
            error=error,
        ))

    async def _safe_log(self, landlord_id: str, entry: EmailLogEntry) -> None:
        """Write a failure entry; a failure here is logged and dropped."""
        try:
            await self.email_log.log_email(landlord_id, entry)
        except Exception as log_err:
            logger.error("Failed to log email failure", landlord_id=landlord_id, error=_error_message(log_err))


async def send_monthly_summary_report(
    reference: Optional[datetime] = None,
    db=None,
    settings: Optional[ReportSettings] = None,
) -> Optional[ReportRunResult]:
    """Composition root used by the worker and the CLI"""
    if db is None:
        await db_manager.initialize()
        db = db_manager.database

    dispatcher = MonthlyReportDispatcher(
        store=MongoLandlordStore(db),
        email_service=EmailService(),
        email_log=EmailLogService.from_database(db),
        settings=settings,
    )
    return await dispatcher.run(reference)
