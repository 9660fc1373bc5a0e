"""
Unit Tests for the notifyhub server runner.
"""

from unittest.mock import patch

from notifyhub.__main__ import main


def test_main_runs_app_factory():
    with patch("notifyhub.__main__.uvicorn.run") as run, patch(
        "notifyhub.__main__.logger"
    ) as logger:
        main(["--port", "8080", "--reload"])

    run.assert_called_once()
    assert run.call_args.args == ("notifyhub.api.main:create_app",)
    assert run.call_args.kwargs["factory"] is True
    assert run.call_args.kwargs["port"] == 8080
    assert run.call_args.kwargs["reload"] is True
    logger.info.assert_called_once()
    assert logger.info.call_args.args == ("notifyhub_server_starting",)
    assert logger.info.call_args.kwargs["host"] == "0.0.0.0"
