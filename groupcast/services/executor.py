from __future__ import annotations

import logging
from typing import Any, Mapping, Optional
from xml.etree import ElementTree

from .actions import ACTIONS, ActionTemplate, build_args
from .errors import InvalidResponse, UnknownAction
from .soap import SoapClient, parse_body


log = logging.getLogger("groupcast.executor")

_MISSING = object()


def nested_value(data: Any, path: tuple[str, ...]) -> Any:
    current = data
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


class ActionExecutor:
    """Runs catalog actions against one player and checks the response shape."""

    def __init__(self, soap: SoapClient, catalog: Mapping[str, ActionTemplate] = ACTIONS) -> None:
        self._soap = soap
        self._catalog = catalog

    def _template(self, action_name: str) -> ActionTemplate:
        template = self._catalog.get(action_name)
        if template is None:
            raise UnknownAction(f"Unknown Sonos action {action_name!r}", action=action_name)
        return template

    async def _call(
        self,
        base_url: str,
        action_name: str,
        override_args: Optional[Mapping[str, Any]],
    ) -> tuple[ActionTemplate, Any]:
        template = self._template(action_name)
        args = build_args(template, override_args)
        response = await self._soap.send(base_url, template.path, template.service, template.action, args)
        if response.status_code != 200:
            raise InvalidResponse(
                f"status code not 200: {response.status_code} from {base_url}",
                action=action_name,
            )
        if not response.body:
            raise InvalidResponse(f"empty body from {base_url}", action=action_name)
        try:
            body = parse_body(response.body)
        except ElementTree.ParseError as exc:
            raise InvalidResponse(f"unparsable body from {base_url}: {exc}", action=action_name) from exc
        result = nested_value(body, template.response_path)
        if result is _MISSING:
            raise InvalidResponse(
                f"response from {base_url} is missing {'/'.join(template.response_path)}",
                action=action_name,
            )
        return template, result

    async def execute_set(
        self,
        base_url: str,
        action_name: str,
        override_args: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        template, result = await self._call(base_url, action_name, override_args)
        if result != template.response_value:
            raise InvalidResponse(f"unexpected response from player >>{result!r}", action=action_name)
        return True

    async def execute_get(
        self,
        base_url: str,
        action_name: str,
        override_args: Optional[Mapping[str, Any]] = None,
    ) -> str:
        _, result = await self._call(base_url, action_name, override_args)
        if not isinstance(result, str):
            log.debug("%s returned non-string value %r", action_name, result)
            raise InvalidResponse("could not get string value from player", action=action_name)
        return result

    async def execute_fetch(
        self,
        base_url: str,
        action_name: str,
        override_args: Optional[Mapping[str, Any]] = None,
    ) -> dict:
        _, result = await self._call(base_url, action_name, override_args)
        if not isinstance(result, dict):
            raise InvalidResponse("could not get structured value from player", action=action_name)
        return result
