import pytest

from tls_trust_prober.errors import ClientIdentityNotFoundError, ConfigurationError
from tls_trust_prober.identity import DirectoryClientIdentityResolver, StaticClientIdentityResolver
from tls_trust_prober.models import ClientIdentity


class TestStaticClientIdentityResolver:

    def test_resolve(self):
        identity = ClientIdentity("icinga", "/etc/icinga.pem")
        resolver = StaticClientIdentityResolver([identity])
        assert resolver.resolve("icinga") is identity
        assert resolver.list_identities() == ["icinga"]

    def test_unknown(self):
        with pytest.raises(ClientIdentityNotFoundError) as excinfo:
            StaticClientIdentityResolver().resolve("icinga")
        assert isinstance(excinfo.value, ConfigurationError)
        assert excinfo.value.name == "icinga"


class TestDirectoryClientIdentityResolver:

    def test_crt_and_key(self, tmp_path):
        (tmp_path / "icinga.crt").write_text("cert")
        (tmp_path / "icinga.key").write_text("key")
        identity = DirectoryClientIdentityResolver(tmp_path).resolve("icinga")
        assert identity == ClientIdentity(
            "icinga", str(tmp_path / "icinga.crt"), str(tmp_path / "icinga.key")
        )

    def test_combined_pem(self, tmp_path):
        (tmp_path / "grafana.pem").write_text("cert+key")
        identity = DirectoryClientIdentityResolver(tmp_path).resolve("grafana")
        assert identity.cert_path == str(tmp_path / "grafana.pem")
        assert identity.key_path is None

    def test_crt_without_key_is_incomplete(self, tmp_path):
        (tmp_path / "icinga.crt").write_text("cert")
        resolver = DirectoryClientIdentityResolver(tmp_path)
        with pytest.raises(ClientIdentityNotFoundError):
            resolver.resolve("icinga")
        assert resolver.list_identities() == []

    @pytest.mark.parametrize("name", ["", "..", "../etc/passwd", "a/b"])
    def test_rejects_path_names(self, tmp_path, name):
        with pytest.raises(ClientIdentityNotFoundError):
            DirectoryClientIdentityResolver(tmp_path).resolve(name)

    def test_list_identities(self, tmp_path):
        (tmp_path / "icinga.crt").write_text("cert")
        (tmp_path / "icinga.key").write_text("key")
        (tmp_path / "grafana.pem").write_text("cert+key")
        (tmp_path / "notes.txt").write_text("")
        assert DirectoryClientIdentityResolver(tmp_path).list_identities() == ["grafana", "icinga"]

    def test_missing_directory(self, tmp_path):
        assert DirectoryClientIdentityResolver(tmp_path / "nope").list_identities() == []
