"""Tests for CLI argument handling and the sample-event sender."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from scripts.send_test_alerts import SAMPLE_EVENTS, send_all
from src.cli import main


class TestMain:
    def test_serve_is_default(self) -> None:
        with patch("src.cli.uvicorn.run") as run:
            main([])
        run.assert_called_once_with("src.api.main:app", host="0.0.0.0", port=3001, log_level="info")

    def test_serve_options(self) -> None:
        with patch("src.cli.uvicorn.run") as run:
            main(["--log-level", "debug", "serve", "--port", "8080", "--host", "127.0.0.1"])
        run.assert_called_once_with("src.api.main:app", host="127.0.0.1", port=8080, log_level="debug")

    def test_send_samples_failure_exits_nonzero(self) -> None:
        with patch("src.cli.send_all", new_callable=AsyncMock, return_value=False), pytest.raises(SystemExit) as exc:
            main(["send-samples", "--delay", "0"])
        assert exc.value.code == 1


class TestSendAll:
    @respx.mock
    @pytest.mark.asyncio
    async def test_posts_every_sample_then_duplicate(self) -> None:
        route = respx.post("http://bff.test/ingest/webhook").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        ok = await send_all("http://bff.test", delay=0)

        assert ok is True
        assert route.call_count == len(SAMPLE_EVENTS) + 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_reports_failure(self) -> None:
        respx.post("http://bff.test/ingest/webhook").mock(return_value=httpx.Response(503, json={"success": False}))

        assert await send_all("http://bff.test", delay=0) is False
