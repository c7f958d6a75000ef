"""Config Loader 단위 테스트"""

import pytest
import tempfile
from pathlib import Path
from typing import Any, Dict, List

from peercall.config.config_loader import ConfigLoader, convert_env_value, field_annotation, load_config
from peercall.config.models import CodecConfig, Config, SignalingConfig, SignalingMethod
from peercall.common.exceptions import ConfigurationError


class TestConfigLoader:
    """ConfigLoader 테스트"""

    def test_load_valid_config(self, temp_config_file):
        """유효한 설정 파일 로드"""
        loader = ConfigLoader(temp_config_file)
        config = loader.load()

        assert config is not None
        assert config.client.user == "alice"
        assert config.client.room == "Room Name"
        assert config.signaling.method == "websocket"
        assert config.signaling.url == "wss://localhost:8443/kurento"
        assert config.codecs.audio == "opus"
        assert config.session.auto_call is True
        assert config.session.auto_call_delay == 0.5
        assert config.logging.level == "INFO"

    def test_defaults_for_missing_sections(self, temp_config_file):
        """생략된 섹션은 기본값"""
        config = ConfigLoader(temp_config_file).load()

        assert config.session.close_on_transport_failure is True
        assert config.ice.servers == ["stun:stun2.l.google.com:19302", "stun:stun.ekiga.net"]
        assert config.media.player_file is None
        assert config.signaling.poll_interval == 1.0

    def test_load_nonexistent_file(self):
        """존재하지 않는 파일 로드 시 에러"""
        loader = ConfigLoader("/nonexistent/config.yaml")

        with pytest.raises(FileNotFoundError):
            loader.load()

    def test_load_invalid_config(self, invalid_config_file):
        """잘못된 설정 파일 로드 시 검증 에러"""
        loader = ConfigLoader(invalid_config_file)

        with pytest.raises(ConfigurationError) as exc_info:
            loader.load()

        message = str(exc_info.value)
        assert "poll_interval" in message
        assert "av1" in message

    def test_load_non_mapping_yaml(self):
        """최상위가 매핑이 아닌 YAML"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, encoding='utf-8') as f:
            f.write("- just\n- a list\n")
            temp_path = f.name

        try:
            with pytest.raises(ConfigurationError):
                ConfigLoader(temp_path).load()
        finally:
            Path(temp_path).unlink(missing_ok=True)

    def test_load_empty_file_uses_defaults(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, encoding='utf-8') as f:
            temp_path = f.name

        try:
            config = ConfigLoader(temp_path).load()
            assert config.client.user == "user1"
            assert config.signaling.dialect == "room"
        finally:
            Path(temp_path).unlink(missing_ok=True)

    def test_env_override(self, temp_config_file, monkeypatch):
        """환경 변수로 설정 오버라이드"""
        monkeypatch.setenv("PEERCALL_CODECS_VIDEO", "h264")
        monkeypatch.setenv("PEERCALL_SESSION_AUTO_CALL", "false")
        monkeypatch.setenv("PEERCALL_SESSION_AUTO_CALL_DELAY", "2")

        config = ConfigLoader(temp_config_file).load()

        assert config.codecs.video == "h264"
        assert config.session.auto_call is False
        assert config.session.auto_call_delay == 2.0

    def test_env_override_list(self, temp_config_file, monkeypatch):
        """콤마 구분 값은 리스트"""
        monkeypatch.setenv("PEERCALL_ICE_SERVERS", "stun:a.example.org:3478, turn:b.example.org")

        config = ConfigLoader(temp_config_file).load()

        assert config.ice.servers == ["stun:a.example.org:3478", "turn:b.example.org"]

    def test_env_config_path(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("PEERCALL_CONFIG_PATH", temp_config_file)

        loader = ConfigLoader()

        assert loader.config_path == temp_config_file
        assert loader.load().client.user == "alice"

    def test_env_override_keeps_string_fields(self, temp_config_file, monkeypatch):
        """문자열 필드는 숫자처럼 보여도 문자열로 유지"""
        monkeypatch.setenv("PEERCALL_CLIENT_USER", "42")
        monkeypatch.setenv("PEERCALL_LOGGING_LEVEL", "DEBUG")

        config = ConfigLoader(temp_config_file).load()

        assert config.client.user == "42"
        assert config.logging.level == "DEBUG"

    def test_env_override_single_ice_server(self, temp_config_file, monkeypatch):
        """콤마 없는 값도 리스트 필드면 한 항목 리스트"""
        monkeypatch.setenv("PEERCALL_ICE_SERVERS", "stun:a.example.org:3478")

        config = ConfigLoader(temp_config_file).load()

        assert config.ice.servers == ["stun:a.example.org:3478"]

    def test_env_override_player_options(self, temp_config_file, monkeypatch):
        monkeypatch.setenv("PEERCALL_MEDIA_PLAYER_OPTIONS", "video_size=640x480, framerate=30")

        config = ConfigLoader(temp_config_file).load()

        assert config.media.player_options == {"video_size": "640x480", "framerate": "30"}

    def test_env_override_custom_codec(self, temp_config_file, monkeypatch):
        """커스텀 코덱 레지스트리는 YAML flow 매핑으로 지정"""
        monkeypatch.setenv("PEERCALL_CODECS_CUSTOM_VIDEO", "{h264high: {pt: 108, name: H264/90000}}")
        monkeypatch.setenv("PEERCALL_CODECS_VIDEO", "h264high")

        config = ConfigLoader(temp_config_file).load()

        assert config.codecs.video == "h264high"
        assert config.codecs.build_catalog().lookup("video", "h264high").payload_type == 108

    def test_env_override_unknown_key(self, temp_config_file, monkeypatch):
        """설정에 없는 PEERCALL_ 환경 변수는 오타로 보고 에러"""
        monkeypatch.setenv("PEERCALL_SESSION_AUTOCALL", "true")

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader(temp_config_file).load()

        assert "PEERCALL_SESSION_AUTOCALL" in str(exc_info.value)

    def test_explicit_environ(self, temp_config_file):
        """environ을 넘기면 os.environ 대신 사용"""
        loader = ConfigLoader(temp_config_file, environ={"PEERCALL_SIGNALING_POLL_INTERVAL": "0.25"})

        assert loader.load().signaling.poll_interval == 0.25

    def test_invalid_player_options(self, temp_config_file):
        loader = ConfigLoader(temp_config_file, environ={"PEERCALL_MEDIA_PLAYER_OPTIONS": "framerate"})

        with pytest.raises(ConfigurationError):
            loader.load()

    def test_load_config_function(self, temp_config_file):
        """load_config 편의 함수"""
        config = load_config(temp_config_file)

        assert isinstance(config, Config)


class TestConfigModels:
    """설정 모델 검증 테스트"""

    def test_scheme_must_match_method(self):
        with pytest.raises(ValueError):
            SignalingConfig(method="poll", url="wss://localhost:8443")

        config = SignalingConfig(method="poll", url="https://localhost:10443", dialect="poll")
        assert config.method == "poll"

    def test_unknown_codec_rejected(self):
        with pytest.raises(ValueError):
            CodecConfig(video="av1")

    def test_custom_codec_accepted(self):
        """커스텀 레지스트리에 추가한 코덱은 선택 가능"""
        codecs = CodecConfig(
            video="h264high",
            custom_video={"h264high": {"pt": 108, "name": "H264/90000", "framesize": "640-480"}},
        )

        catalog = codecs.build_catalog()
        assert catalog.lookup("video", "h264high").payload_type == 108

    def test_custom_codec_conflict_rejected(self):
        """기본 코덱과 payload type 충돌"""
        with pytest.raises(ValueError):
            CodecConfig(custom_audio={"opus2": {"pt": 111, "name": "opus/48000/2"}})

    def test_invalid_ice_server(self):
        with pytest.raises(ValueError):
            Config(ice={"servers": ["http://stun.example.org"]})


class TestConvertEnvValue:
    """필드 타입별 환경 변수 변환 테스트"""

    def test_field_annotation(self):
        assert field_annotation("client", "user") is str
        assert field_annotation("client", "room") is str
        assert field_annotation("session", "auto_call") is bool
        assert field_annotation("session", "nope") is None
        assert field_annotation("nope", "user") is None

    def test_scalars(self):
        assert convert_env_value("yes", bool) is True
        assert convert_env_value("No", bool) is False
        assert convert_env_value("8443", float) == 8443
        assert convert_env_value("0.25", float) == 0.25

    def test_strings_and_enums(self):
        assert convert_env_value("007", str) == "007"
        assert convert_env_value("poll", SignalingMethod) == "poll"

    def test_lists(self):
        assert convert_env_value("stun:a, ,stun:b", List[str]) == ["stun:a", "stun:b"]

    def test_non_mapping_for_dict_field(self):
        with pytest.raises(ConfigurationError):
            convert_env_value("[1, 2]", Dict[str, Dict[str, Any]])
