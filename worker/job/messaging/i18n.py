"""
고객 메시지 다국어 처리

- 언어 감지: 명시 언어 -> 본문 휴리스틱 -> 전화번호 국가 코드
- 의도 분류: 언어별 키워드 사전 (messages.yaml)
- 템플릿 렌더링: 언어별 템플릿, 없으면 기본 언어
"""

import re
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

MESSAGES_PATH = Path(__file__).parent / "messages.yaml"

SUPPORTED_LANGUAGES = ("pt-BR", "en", "es", "zh-CN")
DEFAULT_LANGUAGE = "pt-BR"
FALLBACK_LANGUAGE = "en"

# 국가 코드 -> 언어 (긴 코드부터 비교)
_PHONE_PREFIXES: dict[str, str] = {
    "55": "pt-BR",
    "86": "zh-CN", "852": "zh-CN", "853": "zh-CN",
    "1": "en", "44": "en", "61": "en", "64": "en", "27": "en",
    **{code: "es" for code in (
        "34", "52", "54", "56", "57", "51", "598", "595", "593",
        "58", "591", "507", "506", "502", "504", "505", "503", "809", "53",
    )},
}
_PREFIXES_BY_LENGTH = sorted(_PHONE_PREFIXES, key=len, reverse=True)

_CJK = re.compile(r"[一-鿿]")
_PORTUGUESE = re.compile(r"[ãõç]|\b(obrigad[oa]|você|voce|não|nao|olá|ola|meu|minha)\b", re.IGNORECASE)
_SPANISH = re.compile(r"[ñ¿¡]|\b(gracias|hola|usted|mi pedido|dónde|donde)\b", re.IGNORECASE)


class Intent(str, Enum):
    """수신 메시지 의도"""
    ORDER_INQUIRY = "ORDER_INQUIRY"
    TRACKING_INQUIRY = "TRACKING_INQUIRY"
    CANCELLATION_REQUEST = "CANCELLATION_REQUEST"
    RETURN_REQUEST = "RETURN_REQUEST"
    COMPLAINT = "COMPLAINT"
    SUPPORT_REQUEST = "SUPPORT_REQUEST"
    GENERAL_INQUIRY = "GENERAL_INQUIRY"


@lru_cache(maxsize=1)
def load_messages() -> dict[str, Any]:
    with open(MESSAGES_PATH, encoding="utf-8") as f:
        return yaml.safe_load(f)


def normalize_language(language: str | None) -> str | None:
    """언어 태그 정규화 (pt, pt_BR, pt-br -> pt-BR). 미지원 언어는 None"""
    if not language:
        return None
    primary = language.replace("_", "-").split("-")[0].lower()
    return {"pt": "pt-BR", "en": "en", "es": "es", "zh": "zh-CN"}.get(primary)


def language_from_phone(phone: str | None) -> str:
    """전화번호 국가 코드로 언어 추정 (알 수 없으면 en)"""
    digits = re.sub(r"\D", "", phone or "")
    for prefix in _PREFIXES_BY_LENGTH:
        if digits.startswith(prefix):
            return _PHONE_PREFIXES[prefix]
    return FALLBACK_LANGUAGE


def language_from_text(text: str | None) -> str | None:
    if not text:
        return None
    if _CJK.search(text):
        return "zh-CN"
    if _PORTUGUESE.search(text):
        return "pt-BR"
    if _SPANISH.search(text):
        return "es"
    return None


def detect_language(explicit: str | None = None, text: str | None = None, phone: str | None = None) -> str:
    """명시 언어 -> 본문 -> 전화번호 순으로 언어 결정"""
    return normalize_language(explicit) or language_from_text(text) or language_from_phone(phone)


def classify_intent(text: str, language: str) -> Intent:
    """키워드 사전으로 의도 분류 (일치 없으면 GENERAL_INQUIRY)"""
    lexicon = load_messages()["intents"].get(language) or load_messages()["intents"][FALLBACK_LANGUAGE]
    lowered = text.lower()
    for intent, keywords in lexicon.items():
        if any(keyword.lower() in lowered for keyword in keywords):
            return Intent(intent)
    return Intent.GENERAL_INQUIRY


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(template_key: str, language: str, **values: Any) -> tuple[str, str]:
    """
    템플릿 렌더링

    Returns:
        (subject, body)

    Raises:
        KeyError: 템플릿이 없는 경우
    """
    templates = load_messages()["templates"]
    template = (templates.get(language) or {}).get(template_key) or templates[DEFAULT_LANGUAGE][template_key]
    params = _Defaults({k: v for k, v in values.items() if v is not None})
    subject = template["subject"].format_map(params)
    body = template["body"].format_map(params).strip()
    return subject, body


def auto_response(intent: Intent, language: str) -> str:
    responses = load_messages()["responses"]
    return (responses.get(language) or responses[FALLBACK_LANGUAGE])[intent.value]


def personalize(template: str, values: dict[str, Any]) -> str:
    """{placeholder} 치환 (값이 없는 자리는 그대로 유지)"""
    def replace(match: re.Match) -> str:
        value = values.get(match.group(1))
        return match.group(0) if value is None else str(value)
    return re.sub(r"\{(\w+)\}", replace, template)
