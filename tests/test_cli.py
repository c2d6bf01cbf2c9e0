import pytest

from studio_api.cli import migrate


@pytest.mark.unit
class TestResolveTargets:
    def test_default_database(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db:5432/studio")
        assert migrate.resolve_targets(None) == [("studio-db", "postgresql+psycopg2://u:p@db:5432/studio")]

    def test_tenants_need_template(self, monkeypatch):
        monkeypatch.delenv("TENANT_DATABASE_URL_TEMPLATE", raising=False)
        with pytest.raises(SystemExit):
            migrate.resolve_targets(["one"])

    def test_tenant_targets(self, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgresql://u:p@db:5432/studio_{tenant}")
        targets = migrate.resolve_targets([" One ", "two"])
        assert [name for name, _ in targets] == ["tenant:one", "tenant:two"]
        assert targets[1][1].endswith("/studio_two")


@pytest.mark.unit
class TestMain:
    def test_collects_failures(self, mocker, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgresql://u:p@db:5432/studio_{tenant}")
        upgrade = mocker.patch.object(migrate, "upgrade_head", side_effect=[RuntimeError("locked"), None])

        with pytest.raises(SystemExit) as exc:
            migrate.main(["--tenant", "one", "--tenant", "two"])

        assert upgrade.call_count == 2
        assert "Migrations failed (1/2)" in str(exc.value)
        assert "tenant:one: locked" in str(exc.value)

    def test_fail_fast_stops_early(self, mocker, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgresql://u:p@db:5432/studio_{tenant}")
        upgrade = mocker.patch.object(migrate, "upgrade_head", side_effect=RuntimeError("down"))

        with pytest.raises(SystemExit):
            migrate.main(["--tenant", "one", "--tenant", "two", "--fail-fast"])

        assert upgrade.call_count == 1

    def test_invalid_tenant_name(self, monkeypatch):
        monkeypatch.setenv("TENANT_DATABASE_URL_TEMPLATE", "postgresql://u:p@db:5432/studio_{tenant}")
        with pytest.raises(SystemExit) as exc:
            migrate.main(["--tenant", "www"])
        assert "Invalid tenant" in str(exc.value)
