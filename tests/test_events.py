from unittest import mock

from addon_manager.addons.services.events import LoggingObserver, UninstallSignal


def test_subscribers_run_in_subscription_order():
    calls = mock.Mock()
    signal = UninstallSignal()
    signal.subscribe(calls.addons)
    signal.subscribe(calls.loader)

    signal.fire()

    assert calls.mock_calls == [mock.call.addons(), mock.call.loader()]


def test_fire_without_subscribers():
    UninstallSignal().fire()


def test_logging_observer_accepts_every_event():
    observer = LoggingObserver()
    observer.on_progress(0, 2)
    observer.on_status_message("Installing Radial...")
    observer.on_download_progress(10, None)
    observer.on_fatal_error("boom")
    observer.on_nothing_selected()
