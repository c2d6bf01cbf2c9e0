import pytest
from fastapi import HTTPException
from starlette.requests import Request

from studio_api.database.tenant_connection import (
    clear_tenant_cache,
    get_tenant_database_url,
    get_tenant_engine,
    sanitize_db_name,
    tenant_session,
    validate_tenant_name,
)
from studio_api.dependencies import resolve_tenant, tenant_from_host


def make_request(path="/api/classes", *, session=None, query=b"", headers=None):
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "root_path": "",
        "query_string": query,
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
        "session": session if session is not None else {},
    }
    return Request(scope)


@pytest.mark.unit
class TestValidateTenantName:
    @pytest.mark.parametrize("name", ["acme", "studio-one", "a1", "x"])
    def test_valid(self, name):
        ok, err = validate_tenant_name(name)
        assert ok, err

    @pytest.mark.parametrize(
        "name",
        ["", "-acme", "acme-", "ac me", "acme;drop", "a" * 64, "admin", "www", "test"],
    )
    def test_invalid(self, name):
        ok, _ = validate_tenant_name(name)
        assert not ok


@pytest.mark.unit
def test_sanitize_db_name():
    assert sanitize_db_name("Studio-One") == "studio_one"
    assert sanitize_db_name("9lives") == "_9lives"
    assert sanitize_db_name("") == ""


@pytest.mark.unit
class TestTenantDatabaseUrl:
    def test_unset_template_returns_none(self, monkeypatch):
        monkeypatch.delenv("TENANT_DATABASE_URL_TEMPLATE", raising=False)
        assert get_tenant_database_url("acme") is None

    def test_template_is_filled_and_normalized(self, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgres://u:p@db:5432/{tenant}")
        assert get_tenant_database_url("studio-one") == "postgresql+psycopg2://u:p@db:5432/studio_one"

    def test_invalid_name_raises(self, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgresql://u:p@db/{tenant}")
        with pytest.raises(ValueError):
            get_tenant_database_url("bad;name")


@pytest.mark.unit
class TestTenantEngineCache:
    @pytest.fixture(autouse=True)
    def sqlite_template(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", f"sqlite:///{tmp_path}/{{tenant}}.db")
        yield
        clear_tenant_cache()

    def test_engine_is_cached_per_tenant(self):
        first = get_tenant_engine("acme")
        assert get_tenant_engine(" ACME ") is first
        assert get_tenant_engine("globex") is not first

    def test_clear_disposes_cache(self):
        first = get_tenant_engine("acme")
        clear_tenant_cache()
        assert get_tenant_engine("acme") is not first

    def test_tenant_session_is_bound_to_tenant_engine(self):
        with tenant_session("acme") as session:
            assert session.get_bind() is get_tenant_engine("acme")

    def test_tenant_session_without_template(self, monkeypatch):
        monkeypatch.delenv("TENANT_DATABASE_URL_TEMPLATE")
        with pytest.raises(RuntimeError):
            with tenant_session("acme"):
                pass


@pytest.mark.unit
class TestResolveTenant:
    def test_subdomain(self, monkeypatch):
        monkeypatch.setenv("TENANT_BASE_DOMAIN", "studio.app")
        assert tenant_from_host("acme.studio.app:443") == "acme"
        assert tenant_from_host("www.studio.app") is None
        assert tenant_from_host("studio.app") is None
        assert tenant_from_host("acme.other.app") is None

    def test_no_base_domain(self, monkeypatch):
        monkeypatch.delenv("TENANT_BASE_DOMAIN", raising=False)
        assert tenant_from_host("acme.studio.app") is None

    def test_header_then_host(self, monkeypatch):
        monkeypatch.setenv("TENANT_BASE_DOMAIN", "studio.app")
        request = make_request(headers={"x-tenant": "beta", "host": "acme.studio.app"})
        assert resolve_tenant(request) == "beta"

    def test_session_tenant_wins(self):
        request = make_request(session={"tenant": "acme"}, headers={"x-tenant": "acme"})
        assert resolve_tenant(request) == "acme"

    def test_session_mismatch_is_rejected_on_api(self):
        request = make_request(session={"tenant": "acme"}, query=b"tenant=beta")
        with pytest.raises(HTTPException) as exc:
            resolve_tenant(request)
        assert exc.value.status_code == 403

    def test_invalid_tenant_is_ignored(self):
        request = make_request(headers={"x-tenant": "drop;table"})
        assert resolve_tenant(request) is None
