from typing import Any, Dict, List, Optional

from strapi_mcp.dispatcher import RequestDispatcher

LOCALES_PATH = "/i18n/locales"


class LocaleOperations:
    """Locale sub-resource of the i18n plugin."""

    def __init__(self, dispatcher: RequestDispatcher):
        self._dispatcher = dispatcher

    async def list_locales(self) -> List[Dict[str, Any]]:
        return await self._dispatcher.request("GET", LOCALES_PATH) or []

    async def default_locale(self) -> Optional[str]:
        for locale in await self.list_locales():
            if locale.get("isDefault"):
                return locale.get("code")
        return None

    async def create_locale(self, code: str, name: Optional[str] = None, is_default: bool = False) -> Any:
        body = {"code": code, "name": name or f"{code.upper()} ({code})", "isDefault": is_default}
        return await self._dispatcher.request("POST", LOCALES_PATH, json_body=body)

    async def delete_locale(self, locale_id: int) -> Dict[str, Any]:
        await self._dispatcher.request("DELETE", f"{LOCALES_PATH}/{locale_id}")
        return {"success": True, "message": f"Locale {locale_id} deleted successfully"}
