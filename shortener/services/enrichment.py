from typing import Optional

from fastapi import Request

from ..schemas import ClickMetadata, UNKNOWN

# Checked in order; the first token found in the user agent wins.
_DEVICES = (("ipad", "tablet"), ("tablet", "tablet"), ("mobi", "mobile"), ("android", "mobile"), ("bot", "bot"))
_BROWSERS = (("edg/", "Edge"), ("opr/", "Opera"), ("firefox/", "Firefox"), ("chrome/", "Chrome"), ("safari/", "Safari"), ("curl/", "curl"))
_SYSTEMS = (("windows", "Windows"), ("android", "Android"), ("iphone", "iOS"), ("ipad", "iOS"), ("mac os", "macOS"), ("linux", "Linux"))

def _match(user_agent: str, table) -> Optional[str]:
    for token, label in table:
        if token in user_agent:
            return label
    return None

class UserAgentEnricher:
    """Fills device/browser/os from the user agent string.

    Geography needs an external lookup service; without one it stays unknown.
    """

    async def enrich(self, metadata: ClickMetadata) -> ClickMetadata:
        ua = (metadata.user_agent or "").lower()
        if not ua:
            return metadata
        device = _match(ua, _DEVICES) or "desktop"
        return metadata.model_copy(update={
            "device": device if metadata.device == UNKNOWN else metadata.device,
            "browser": (_match(ua, _BROWSERS) or UNKNOWN) if metadata.browser == UNKNOWN else metadata.browser,
            "os": (_match(ua, _SYSTEMS) or UNKNOWN) if metadata.os == UNKNOWN else metadata.os,
        })

def client_ip(request: Request) -> Optional[str]:
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None

def extract_click_metadata(request: Request) -> ClickMetadata:
    return ClickMetadata(
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        referer=request.headers.get("Referer"),
    )
