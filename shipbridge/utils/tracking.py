"""Helpers for presenting carrier tracking information."""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

_HANJIN_CODE = "0018"
_HANJIN_TRACKING_URL = (
    "https://www.hanjin.co.kr/kor/CMS/DeliveryMgr/WaybillResult.do"
    "?mCode=MN038&wblnum={tracking_no}"
)


def _is_hanjin(code: str) -> bool:
    return code == _HANJIN_CODE or "hanjin" in code


def normalize_shipping_company(shipping_company_code: Optional[str]) -> Optional[str]:
    """Map Cafe24 carrier codes to a short carrier name where one is known."""
    if not shipping_company_code:
        return None
    code = shipping_company_code.lower()
    if _is_hanjin(code):
        return "hanjin"
    return code


def build_tracking_url(
    shipping_company_code: Optional[str], tracking_no: Optional[str]
) -> Optional[str]:
    """Return a public tracking page URL, or ``None`` for unsupported carriers."""
    if not tracking_no:
        return None
    code = (shipping_company_code or "").lower()
    if _is_hanjin(code):
        return _HANJIN_TRACKING_URL.format(tracking_no=quote(tracking_no, safe=""))
    return None


__all__ = ["build_tracking_url", "normalize_shipping_company"]
