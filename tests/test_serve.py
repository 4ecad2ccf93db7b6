from quizbank import serve
from quizbank.config import settings


def test_serve_runs_app_with_configured_address(monkeypatch):
	calls = []
	monkeypatch.setattr(serve.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
	serve.main()
	assert calls == [("quizbank.main:app", {"host": settings.host, "port": settings.port, "log_level": settings.log_level.lower()})]
