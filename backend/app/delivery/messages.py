"""Participant-facing copy in English and Arabic.

Copy is keyed by screen or reason and rendered with the organization's
name where one is known. Nothing here interpolates exception text.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Mapping, Optional

from ..score_summary import grade_full_label, grade_with_abbreviation

RTL_LANGUAGES = frozenset({"ar"})

_COPY: Dict[str, Dict[str, str]] = {
    "en": {
        "loading": "Loading assessment...",
        "error_title": "Unable to Load Assessment",
        "invalid_link": "This assessment link is not valid. Please check the link you received.",
        "load_failed": "We could not load this assessment. Please try again in a moment.",
        "not_started_title": "Assessment Not Yet Available",
        "not_started": "This assessment opens on {date}.",
        "not_started_undated": "This assessment has not opened yet.",
        "expired_title": "Assessment Period Ended",
        "expired": "The assessment window closed on {date}.",
        "expired_undated": "The assessment window has closed.",
        "closed_title": "Assessment Closed",
        "closed": "{organization} has closed this assessment.",
        "completed_title": "Thank You!",
        "completed": "Your responses have been submitted to {organization}.",
        "results_title": "Your Results",
        "results_grade": "Grade: {label}",
        "answer_required": "Please select an answer",
        "register_failed": "Failed to register. Please try again.",
        "register_missing": "Please fill in required fields",
        "submit_failed": "Failed to submit assessment. Please try again.",
        "cannot_submit": "This assessment can no longer be submitted.",
        "leave_warning": "Leaving this page will submit your assessment with the answers given so far.",
        "time_warning_minutes": "{minutes} minutes remaining",
        "time_warning_last_minute": "1 minute remaining",
        "DUPLICATE_CODE": "This employee code has already been used for this assessment.",
        "DUPLICATE_EMAIL": "This email has already been used for this assessment.",
        "DUPLICATE": "You have already registered for this assessment.",
        "your_organization": "your organization",
    },
    "ar": {
        "loading": "جارٍ تحميل التقييم...",
        "error_title": "تعذر تحميل التقييم",
        "invalid_link": "رابط التقييم غير صالح. يرجى التحقق من الرابط الذي استلمته.",
        "load_failed": "تعذر تحميل هذا التقييم. يرجى المحاولة مرة أخرى بعد قليل.",
        "not_started_title": "التقييم غير متاح بعد",
        "not_started": "يبدأ هذا التقييم في {date}.",
        "not_started_undated": "لم يبدأ هذا التقييم بعد.",
        "expired_title": "انتهت فترة التقييم",
        "expired": "انتهت فترة التقييم في {date}.",
        "expired_undated": "انتهت فترة التقييم.",
        "closed_title": "التقييم مغلق",
        "closed": "قامت {organization} بإغلاق هذا التقييم.",
        "completed_title": "شكراً لك!",
        "completed": "تم إرسال إجاباتك إلى {organization}.",
        "results_title": "نتائجك",
        "results_grade": "التقدير: {label}",
        "answer_required": "يرجى اختيار إجابة",
        "register_failed": "فشل التسجيل. يرجى المحاولة مرة أخرى.",
        "register_missing": "يرجى تعبئة الحقول المطلوبة",
        "submit_failed": "فشل إرسال التقييم. يرجى المحاولة مرة أخرى.",
        "cannot_submit": "لم يعد بالإمكان إرسال هذا التقييم.",
        "leave_warning": "مغادرة هذه الصفحة ستؤدي إلى إرسال التقييم بالإجابات الحالية.",
        "time_warning_minutes": "متبقٍ {minutes} دقائق",
        "time_warning_last_minute": "متبقٍ دقيقة واحدة",
        "DUPLICATE_CODE": "تم استخدام الرقم الوظيفي هذا مسبقاً لهذا التقييم.",
        "DUPLICATE_EMAIL": "تم استخدام البريد الإلكتروني هذا مسبقاً لهذا التقييم.",
        "DUPLICATE": "أنت مسجل مسبقاً في هذا التقييم.",
        "your_organization": "جهتك",
    },
}


def normalize_language(language: Optional[str]) -> str:
    return "ar" if language == "ar" else "en"


def is_rtl(language: Optional[str]) -> bool:
    return normalize_language(language) in RTL_LANGUAGES


def text(key: str, language: Optional[str] = None, **values: object) -> str:
    table = _COPY[normalize_language(language)]
    template = table.get(key) or _COPY["en"][key]
    return template.format(**values) if values else template


def _format_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return None


def time_warning(threshold_seconds: int, language: Optional[str] = None) -> str:
    minutes = max(threshold_seconds // 60, 1)
    if minutes == 1:
        return text("time_warning_last_minute", language)
    return text("time_warning_minutes", language, minutes=minutes)


def duplicate_reason(code: Optional[str], language: Optional[str] = None) -> str:
    if code in ("DUPLICATE_CODE", "DUPLICATE_EMAIL"):
        return text(code, language)
    return text("DUPLICATE", language)


def terminal_screen(
    state: str,
    language: Optional[str] = None,
    *,
    organization_name: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    reason: str = "load_failed",
) -> Mapping[str, str]:
    """Title and body for a terminal screen, branded with the organization name."""
    organization = organization_name or text("your_organization", language)
    if state == "not_started":
        date = _format_date(start_date)
        body = text("not_started", language, date=date) if date else text("not_started_undated", language)
        return {"title": text("not_started_title", language), "body": body}
    if state == "expired":
        date = _format_date(end_date)
        body = text("expired", language, date=date) if date else text("expired_undated", language)
        return {"title": text("expired_title", language), "body": body}
    if state == "closed":
        return {"title": text("closed_title", language), "body": text("closed", language, organization=organization)}
    if state == "completed":
        return {
            "title": text("completed_title", language),
            "body": text("completed", language, organization=organization),
        }
    if state == "results":
        return {"title": text("results_title", language), "body": ""}
    return {"title": text("error_title", language), "body": text(reason, language)}


def grade_line(grade: str, language: Optional[str] = None) -> str:
    # Grade abbreviations stay in English in every language.
    label = grade_full_label(grade) if normalize_language(language) == "en" else grade_with_abbreviation(grade)
    return text("results_grade", language, label=label)


__all__ = [
    "duplicate_reason",
    "grade_line",
    "is_rtl",
    "normalize_language",
    "terminal_screen",
    "text",
    "time_warning",
]
