"""설정 로더 모듈

YAML 설정 파일 + PEERCALL_<SECTION>_<KEY> 환경 변수 오버라이드

환경 변수 값은 해당 필드의 모델 타입에 맞춰 해석한다.
- 문자열/열거형 필드: 그대로 (PEERCALL_CLIENT_USER=42 → "42")
- 리스트 필드: 콤마 구분 (PEERCALL_ICE_SERVERS=stun:a,stun:b)
- 문자열 매핑 필드: key=value 콤마 구분 (PEERCALL_MEDIA_PLAYER_OPTIONS=video_size=640x480,framerate=30)
- 커스텀 코덱 레지스트리: YAML flow 매핑 (PEERCALL_CODECS_CUSTOM_VIDEO={h264high: {pt: 108, name: H264/90000}})
- 그 외 (bool, 숫자): YAML 스칼라 (true/no/8443/0.25)
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union, get_args, get_origin

import yaml
from pydantic import ValidationError

from .models import Config
from peercall.common.exceptions import ConfigurationError

ENV_PREFIX = "PEERCALL_"
CONFIG_PATH_ENV = "PEERCALL_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "config.yaml"


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def field_annotation(section: str, key: str) -> Optional[Any]:
    """Config.<section>.<key> 필드 타입 (없는 필드면 None)"""
    section_field = Config.model_fields.get(section)
    if section_field is None:
        return None
    model_fields = getattr(section_field.annotation, "model_fields", {})
    field = model_fields.get(key)
    return None if field is None else _unwrap_optional(field.annotation)


def convert_env_value(value: str, annotation: Any) -> Any:
    """환경 변수 문자열을 필드 타입에 맞게 변환

    Raises:
        ConfigurationError: 매핑 형식 오류
    """
    origin = get_origin(annotation)

    if origin is list:
        return [item.strip() for item in value.split(",") if item.strip()]

    if origin is dict:
        value_type = get_args(annotation)[1] if get_args(annotation) else Any
        if value_type is str:
            return _parse_pairs(value)
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"매핑 값 파싱 오류: {value!r}: {e}") from e
        if not isinstance(parsed, dict):
            raise ConfigurationError(f"매핑 값이 필요합니다: {value!r}")
        return parsed

    if isinstance(annotation, type) and issubclass(annotation, (str, Enum)):
        return value

    try:
        return yaml.safe_load(value)
    except yaml.YAMLError:
        return value


def _parse_pairs(value: str) -> Dict[str, str]:
    pairs = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, val = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"key=value 형식이 아닙니다: {item!r}")
        pairs[key.strip()] = val.strip()
    return pairs


class ConfigLoader:
    """설정 로더 (YAML + 환경 변수)"""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """초기화

        Args:
            config_path: 설정 파일 경로 (None이면 PEERCALL_CONFIG_PATH, 없으면 config/config.yaml)
            environ: 오버라이드에 사용할 환경 변수 (None이면 os.environ)
        """
        self._environ = os.environ if environ is None else environ
        self.config_path = config_path or self._environ.get(CONFIG_PATH_ENV) or str(DEFAULT_CONFIG_PATH)

    def load(self) -> Config:
        """설정 파일 로드, 환경 변수 적용 후 검증

        Raises:
            FileNotFoundError: 설정 파일이 없는 경우
            ConfigurationError: YAML 파싱, 환경 변수, 설정 검증 실패
        """
        raw_config = self._read_yaml()
        raw_config = self.apply_env_overrides(raw_config)

        try:
            return Config(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(self._format_validation_error(e)) from e

    def _read_yaml(self) -> Dict[str, Any]:
        path = Path(self.config_path)
        if not path.exists():
            raise FileNotFoundError(
                f"설정 파일을 찾을 수 없습니다: {self.config_path}\n"
                f"config/config.example.yaml을 복사하여 config/config.yaml을 생성하세요."
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML 파싱 오류 ({self.config_path}): {e}") from e

        if raw_config is None:
            return {}
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"설정 파일 최상위는 매핑이어야 합니다: {self.config_path}")
        return raw_config

    def apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """PEERCALL_<SECTION>_<KEY> 환경 변수 적용

        섹션 이름에는 '_'가 없으므로 첫 토큰이 섹션, 나머지가 키다.
        (PEERCALL_SESSION_AUTO_CALL_DELAY → session.auto_call_delay)

        Raises:
            ConfigurationError: 설정에 없는 섹션/키
        """
        for env_key in sorted(self._environ):
            if not env_key.startswith(ENV_PREFIX) or env_key == CONFIG_PATH_ENV:
                continue

            section, _, key = env_key[len(ENV_PREFIX):].lower().partition('_')
            annotation = field_annotation(section, key) if key else None
            if annotation is None:
                raise ConfigurationError(f"알 수 없는 설정 환경 변수: {env_key}")

            if not isinstance(config.get(section), dict):
                config[section] = {}
            config[section][key] = convert_env_value(self._environ[env_key], annotation)

        return config

    @staticmethod
    def _format_validation_error(error: ValidationError) -> str:
        """ValidationError를 사용자 친화적인 메시지로 변환"""
        errors = []
        for err in error.errors():
            loc = " → ".join(str(l) for l in err['loc'])
            errors.append(f"  • {loc}: {err['msg']}")

        return "설정 검증 오류:\n" + "\n".join(errors)


def load_config(config_path: Optional[str] = None) -> Config:
    """설정 파일 로드 편의 함수"""
    return ConfigLoader(config_path).load()
