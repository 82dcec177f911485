"""Tests for server config variable substitution and fingerprints."""

from tether.connections.config import (
    ServerConfig,
    build_variables,
    resolve_server_config,
    substitute_variables,
)
from tether.connections.fingerprint import compute_fingerprint


class TestSubstitution:
    def setup_method(self):
        self.variables = build_variables(
            "/opt/ext", "/home/user", {"api_key": "k-1", "port": 8443}
        )

    def test_builds_closed_variable_set(self):
        assert self.variables == {
            "__dirname": "/opt/ext",
            "HOME": "/home/user",
            "user_config.api_key": "k-1",
            "user_config.port": "8443",
        }

    def test_replaces_known_names_in_nested_values(self):
        value = {
            "url": "https://localhost:${user_config.port}/mcp",
            "args": ["${__dirname}/server.js", "--home=${HOME}"],
            "count": 3,
        }

        result = substitute_variables(value, self.variables)

        assert result == {
            "url": "https://localhost:8443/mcp",
            "args": ["/opt/ext/server.js", "--home=/home/user"],
            "count": 3,
        }

    def test_unknown_names_are_left_untouched(self):
        assert substitute_variables("${PATH}:${user_config.missing}", self.variables) == (
            "${PATH}:${user_config.missing}"
        )

    def test_expressions_are_not_evaluated(self):
        value = "${__import__('os').getcwd()}"

        assert substitute_variables(value, self.variables) == value

    def test_resolve_server_config(self):
        config = resolve_server_config(
            {
                "type": "http",
                "entry_point": "https://api.example.com/${user_config.api_key}",
                "headers": {"X-Key": "${user_config.api_key}"},
                "oauth_config": {"enabled": True, "auto_register": True},
            },
            self.variables,
        )

        assert config.entry_point == "https://api.example.com/k-1"
        assert config.headers == {"X-Key": "k-1"}
        assert config.oauth_config.enabled
        assert config.oauth_config.client_id is None


class TestFingerprint:
    def test_stable_for_equal_configs(self):
        a = ServerConfig(entry_point="https://mcp.example.com", headers={"a": "1", "b": "2"})
        b = ServerConfig(entry_point="https://mcp.example.com", headers={"b": "2", "a": "1"})

        assert compute_fingerprint("ext", a) == compute_fingerprint("ext", b)
        assert len(compute_fingerprint("ext", a)) == 64

    def test_differs_on_any_setting(self):
        base = ServerConfig(entry_point="https://mcp.example.com")
        fingerprint = compute_fingerprint("ext", base, {"region": "eu"})

        assert fingerprint != compute_fingerprint("other", base, {"region": "eu"})
        assert fingerprint != compute_fingerprint("ext", base, {"region": "us"})
        assert fingerprint != compute_fingerprint(
            "ext",
            ServerConfig(entry_point="https://mcp.example.com", headers={"X": "1"}),
            {"region": "eu"},
        )
