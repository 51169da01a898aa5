from __future__ import annotations

from platecost.core.config import get_settings


DEFAULT_LOCALE = "en"

# User-facing strings; distinct per error category so the UI can pick the right state.
MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "config_missing": "Service is not configured",
        "webhook_not_configured": "Webhook not configured",
        "signature_missing": "Missing signature",
        "signature_invalid": "Invalid signature",
        "payload_invalid": "Invalid webhook payload",
        "webhook_failed": "Webhook processing failed",
        "auth_missing": "Unauthorized",
        "auth_invalid": "Invalid session",
        "restaurant_id_required": "Restaurant id is required",
        "restaurant_forbidden": "You do not have access to this restaurant",
        "plan_upgrade_ai": (
            "The AI assistant is available on the Elite plan only. "
            "Upgrade your subscription to get access."
        ),
        "plan_upgrade_sales": (
            "Sales import is available on the Pro and Elite plans. "
            "Upgrade your subscription to get access."
        ),
        "monthly_cap_exceeded": (
            "Monthly AI assistant usage limit reached. "
            "The limit resets at the start of next month."
        ),
        "upstream_rate_limited": "Too many requests, please try again later.",
        "upstream_payment_required": "Please add credit to keep using the AI assistant.",
        "upstream_error": "AI service error",
        "internal_error": "Internal server error",
        "import_invalid": "Sales data is invalid",
        "import_not_found": "Sales import not found",
    },
    "ar": {
        "config_missing": "الخدمة غير مهيأة",
        "webhook_not_configured": "Webhook not configured",
        "signature_missing": "Missing signature",
        "signature_invalid": "Invalid signature",
        "payload_invalid": "Invalid webhook payload",
        "webhook_failed": "Webhook processing failed",
        "auth_missing": "غير مصرح",
        "auth_invalid": "جلسة غير صالحة",
        "restaurant_id_required": "معرف المطعم مطلوب",
        "restaurant_forbidden": "غير مصرح بالوصول لهذا المطعم",
        "plan_upgrade_ai": (
            "المساعد الذكي متاح فقط لمشتركي الباقة المميزة (Elite). "
            "قم بترقية اشتراكك للوصول."
        ),
        "plan_upgrade_sales": "استيراد المبيعات متاح لمشتركي باقة Pro و Elite. قم بترقية اشتراكك للوصول.",
        "monthly_cap_exceeded": (
            "تم تجاوز الحد الشهري لاستخدام المساعد الذكي. يتجدد الحد في بداية الشهر القادم."
        ),
        "upstream_rate_limited": "تم تجاوز حد الطلبات، يرجى المحاولة لاحقاً.",
        "upstream_payment_required": "يرجى إضافة رصيد للاستمرار في استخدام المساعد الذكي.",
        "upstream_error": "خطأ في خدمة الذكاء الاصطناعي",
        "internal_error": "خطأ غير معروف",
        "import_invalid": "بيانات المبيعات غير صالحة",
        "import_not_found": "عملية الاستيراد غير موجودة",
    },
}


def resolve_locale(locale: str | None = None) -> str:
    # Fall back to English for unknown locales rather than failing the request.
    candidate = (locale or get_settings().messages_locale or DEFAULT_LOCALE).lower()
    return candidate if candidate in MESSAGES else DEFAULT_LOCALE


def get_message(key: str, locale: str | None = None) -> str:
    catalog = MESSAGES[resolve_locale(locale)]
    return catalog.get(key) or MESSAGES[DEFAULT_LOCALE][key]
