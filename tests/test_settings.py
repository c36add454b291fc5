"""Tests for configuration loading."""

import json

import pytest

from birdwatch.config.settings import AppConfig, get_app_config, load_client_secret, load_config_file

ENV_VARS = [
    "GCP_PROJECT_ID", "GCF_REGION", "PUBSUB_TOPIC_ID", "BIRDWATCH_BASE_URL", "TARGET_LABEL",
    "OAUTH_TOKEN_COLLECTION", "TOKEN_REFRESH_MARGIN_SECONDS", "VISION_MAX_CONCURRENT",
    "GOOGLE_OAUTH_CLIENT_ID", "GOOGLE_OAUTH_CLIENT_SECRET", "GOOGLE_OAUTH_REDIRECT_URI",
    "CLIENT_SECRET_PATH", "BIRDWATCH_CONFIG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def oauth_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_ID", "cid")
    monkeypatch.setenv("GOOGLE_OAUTH_CLIENT_SECRET", "secret")


class TestComputedValues:
    def test_cloud_functions_urls(self) -> None:
        config = AppConfig(gcp_project_id="demo", gcf_region="europe-west1", topic_id="gmail")
        assert config.base_url == "https://europe-west1-demo.cloudfunctions.net"
        assert config.topic_name == "projects/demo/topics/gmail"
        assert config.redirect_uri == "https://europe-west1-demo.cloudfunctions.net/oauth2callback"

    def test_base_url_override(self) -> None:
        config = AppConfig(gcp_project_id="demo", gcf_region="r", topic_id="t", base_url_override="http://localhost:8080/")
        assert config.redirect_uri == "http://localhost:8080/oauth2callback"


class TestGetAppConfig:
    def test_reads_environment(self, monkeypatch, oauth_env) -> None:
        monkeypatch.setenv("GCP_PROJECT_ID", "demo")
        monkeypatch.setenv("GCF_REGION", "us-central1")
        monkeypatch.setenv("PUBSUB_TOPIC_ID", "gmail-watch")
        monkeypatch.setenv("TARGET_LABEL", "Owl")
        monkeypatch.setenv("TOKEN_REFRESH_MARGIN_SECONDS", "120")

        config = get_app_config()

        assert config.topic_name == "projects/demo/topics/gmail-watch"
        assert config.target_label == "Owl"
        assert config.refresh_margin_seconds == 120
        assert config.oauth.client_id == "cid"
        assert config.oauth.is_configured
        assert config.gmail.mutation_label_ids == ["STARRED"]
        assert config.gmail.watch_label_ids == ["INBOX"]

    def test_defaults(self, oauth_env) -> None:
        config = get_app_config()
        assert config.target_label == "bird"
        assert config.firestore_collection == "oauth2Token"
        assert config.refresh_margin_seconds == 60

    def test_yaml_overrides_below_environment(self, tmp_path, monkeypatch, oauth_env) -> None:
        config_file = tmp_path / "birdwatch.yaml"
        config_file.write_text(
            "gcp_project_id: from-yaml\n"
            "target_label: heron\n"
            "gmail:\n"
            "  mutation_label_ids: [STARRED, IMPORTANT]\n"
        )
        monkeypatch.setenv("TARGET_LABEL", "bird")

        config = get_app_config(str(config_file))

        assert config.gcp_project_id == "from-yaml"
        assert config.target_label == "bird"
        assert config.gmail.mutation_label_ids == ["STARRED", "IMPORTANT"]

    def test_client_secret_file(self, tmp_path, monkeypatch) -> None:
        secret_file = tmp_path / "client_secret.json"
        secret_file.write_text(json.dumps({"web": {"client_id": "file-cid", "client_secret": "file-secret"}}))
        monkeypatch.setenv("CLIENT_SECRET_PATH", str(secret_file))

        config = get_app_config()

        assert config.oauth.client_id == "file-cid"
        assert config.oauth.client_secret == "file-secret"


class TestLoaders:
    def test_missing_client_secret_file(self, tmp_path) -> None:
        assert load_client_secret(str(tmp_path / "absent.json")) == {}

    def test_no_config_file(self) -> None:
        assert load_config_file() == {}

    def test_config_file_must_be_mapping(self, tmp_path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_config_file(str(config_file))
