import importlib
import newrelic.agent

import app.main as main_module


class TestNewRelicStartup:
    def test_agent_initialised_when_license_key_set(self, monkeypatch):
        calls = []
        monkeypatch.setattr(newrelic.agent, "initialize", lambda *args: calls.append(args))
        monkeypatch.setenv("NEW_RELIC_LICENSE_KEY", "test-key")
        importlib.reload(main_module)
        assert calls == [("newrelic.ini",)]

    def test_agent_skipped_without_license_key(self, monkeypatch):
        calls = []
        monkeypatch.setattr(newrelic.agent, "initialize", lambda *args: calls.append(args))
        monkeypatch.delenv("NEW_RELIC_LICENSE_KEY", raising=False)
        importlib.reload(main_module)
        assert calls == []


class TestRun:
    def test_run_serves_app_with_uvicorn(self, monkeypatch):
        served = {}
        monkeypatch.setattr(main_module.uvicorn, "run",
                            lambda app, **kwargs: served.update(app=app, **kwargs))
        main_module.run()
        assert served["app"] is main_module.app
        assert served["port"] == 8000
        assert served["log_level"] == "info"
