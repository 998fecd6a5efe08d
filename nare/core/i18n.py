"""Localized bot strings (English, Korean, Swedish)."""

from typing import Any

from .session import Language

STRINGS: dict[str, dict[str, str]] = {
    "start": {
        "en": "NARE connected! I will manage your Linux system through this chat.",
        "ko": "NARE 연결됨! 이 채팅을 통해 Linux 시스템을 관리합니다.",
        "sv": "NARE ansluten! Jag hanterar ditt Linux-system via den här chatten.",
    },
    "help": {
        "en": (
            "Tell me what you need in plain words and I will inspect or change the system for you.\n\n"
            "/run <command> - run a shell command directly\n"
            "/status - backend and granted permissions\n"
            "/lang - change language\n"
            "/help - this message"
        ),
        "ko": (
            "원하는 작업을 자연어로 말해 주세요. 시스템을 확인하거나 변경해 드립니다.\n\n"
            "/run <명령> - 셸 명령 직접 실행\n"
            "/status - 백엔드 및 허용된 권한\n"
            "/lang - 언어 변경\n"
            "/help - 이 도움말"
        ),
        "sv": (
            "Berätta med vanliga ord vad du behöver så inspekterar eller ändrar jag systemet åt dig.\n\n"
            "/run <kommando> - kör ett skalkommando direkt\n"
            "/status - backend och beviljade behörigheter\n"
            "/lang - byt språk\n"
            "/help - det här meddelandet"
        ),
    },
    "status": {
        "en": "AI backend: {backend}\nLanguage: {language_name}\nGranted: {granted}\nDenied: {denied}",
        "ko": "AI 백엔드: {backend}\n언어: {language_name}\n허용됨: {granted}\n거부됨: {denied}",
        "sv": "AI-backend: {backend}\nSpråk: {language_name}\nBeviljat: {granted}\nNekat: {denied}",
    },
    "none": {"en": "none", "ko": "없음", "sv": "inga"},
    "lang.pick": {
        "en": "Choose a language:",
        "ko": "언어를 선택하세요:",
        "sv": "Välj språk:",
    },
    "lang.set": {
        "en": "Language set to English.",
        "ko": "언어가 한국어로 설정되었습니다.",
        "sv": "Språket är nu svenska.",
    },
    "run.usage": {
        "en": "Usage: /run <command>",
        "ko": "사용법: /run <명령>",
        "sv": "Användning: /run <kommando>",
    },
    "blocked": {
        "en": "🚫 Blocked: `{command}` ({reason}). This command is never executed.",
        "ko": "🚫 차단됨: `{command}` ({reason}). 이 명령은 절대 실행되지 않습니다.",
        "sv": "🚫 Blockerat: `{command}` ({reason}). Det här kommandot körs aldrig.",
    },
    "denied": {
        "en": "🔒 Permission denied: `{command}` needs the '{category}' permission. "
        "Grant it in the NARE settings (nare permissions --grant {category}).",
        "ko": "🔒 권한 거부: `{command}` 에는 '{category}' 권한이 필요합니다. "
        "NARE 설정에서 허용하세요 (nare permissions --grant {category}).",
        "sv": "🔒 Behörighet nekad: `{command}` kräver behörigheten '{category}'. "
        "Bevilja den i NARE-inställningarna (nare permissions --grant {category}).",
    },
    "confirm.prompt": {
        "en": "⚠️ This command involves {label}:\n`{command}`\nRun it?",
        "ko": "⚠️ 이 명령은 {label} 작업을 포함합니다:\n`{command}`\n실행할까요?",
        "sv": "⚠️ Det här kommandot innebär {label}:\n`{command}`\nKöra det?",
    },
    "confirm.yes": {"en": "Yes", "ko": "예", "sv": "Ja"},
    "confirm.no": {"en": "No", "ko": "아니요", "sv": "Nej"},
    "confirm.cancelled": {
        "en": "Cancelled: `{command}`",
        "ko": "취소됨: `{command}`",
        "sv": "Avbrutet: `{command}`",
    },
    "confirm.nothing": {
        "en": "Nothing is waiting for confirmation (it may have expired).",
        "ko": "확인 대기 중인 명령이 없습니다 (만료되었을 수 있습니다).",
        "sv": "Inget väntar på bekräftelse (det kan ha gått ut).",
    },
    "provider.error": {
        "en": "⚠️ The AI backend failed: {error}. Please try again.",
        "ko": "⚠️ AI 백엔드 오류: {error}. 다시 시도해 주세요.",
        "sv": "⚠️ AI-backend misslyckades: {error}. Försök igen.",
    },
    "prompt.language": {
        "en": "Always reply in English.",
        "ko": "항상 한국어로 답변하세요.",
        "sv": "Svara alltid på svenska.",
    },
}

LANGUAGE_NAMES: dict[Language, str] = {
    Language.EN: "English",
    Language.KO: "한국어",
    Language.SV: "Svenska",
}


def t(key: str, language: Language | str = Language.EN, **kwargs: Any) -> str:
    """Look up a localized string, falling back to English."""
    code = language.value if isinstance(language, Language) else language
    entry = STRINGS[key]
    text = entry.get(code) or entry["en"]
    return text.format(**kwargs) if kwargs else text
