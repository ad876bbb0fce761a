import logging

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from services.common import ServiceSettings, build_app, configure_logging
from services.common.logging import TraceContextFilter
from services.common.tracing import _INSTRUMENTED_APPS, configure_tracing
from services.portal_client.app.config import ClientSettings


@pytest.mark.usefixtures("caplog")
class TestTracingInstrumentation:
    def test_tracing_instruments_each_app_once(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = ServiceSettings(
            enable_tracing=True,
            enable_metrics=False,
            app_name="Academic Tracing Test",
        )
        configure_logging(settings)
        caplog.set_level(logging.WARNING)
        before = len(_INSTRUMENTED_APPS)
        app = build_app(settings)
        assert len(_INSTRUMENTED_APPS) == before + 1
        configure_tracing(app, settings)
        assert len(_INSTRUMENTED_APPS) == before + 1
        assert isinstance(trace.get_tracer_provider(), TracerProvider)

    def test_log_records_carry_trace_identifiers(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = ServiceSettings(
            enable_tracing=True,
            enable_metrics=False,
            app_name="Academic Logging Test",
        )
        configure_logging(settings)
        build_app(settings)
        caplog.clear()
        caplog.handler.addFilter(TraceContextFilter())
        tracer = trace.get_tracer(__name__)
        logger = logging.getLogger("academic-trace-test")
        with caplog.at_level(logging.INFO):
            logger.info("outside span")
            with tracer.start_as_current_span("submit-term"):
                logger.info("inside span")

        outside = next(record for record in caplog.records if record.message == "outside span")
        inside = next(record for record in caplog.records if record.message == "inside span")
        assert getattr(outside, "trace_id", "-") == "-"
        assert getattr(outside, "span_id", "-") == "-"
        assert len(inside.trace_id) == 32
        assert len(inside.span_id) == 16


def test_configure_logging_accepts_client_settings() -> None:
    configure_logging(ClientSettings(log_level="ERROR"))

    root = logging.getLogger()
    assert root.level == logging.ERROR
    assert any(isinstance(item, TraceContextFilter) for item in root.filters)

    configure_logging(ServiceSettings(log_level="INFO"))
    assert root.level == logging.INFO
