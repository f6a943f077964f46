"""
Request Builder for hxengine

Turns a fired trigger into an immutable RequestDescriptor: method, URL,
parameters, encoding, contextual headers, target, swap and sync scope.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import Tag

from hxengine.config import EngineSettings
from hxengine.dom.document import Document, FileField
from hxengine.errors import BuildError, IncludeNotFoundError, TargetNotFoundError
from hxengine.models import headers as hx
from hxengine.models.request import (
    BodyEncoding,
    HttpMethod,
    RequestDescriptor,
    SyncSpec,
    SyncStrategy,
)
from hxengine.models.swap import SwapSpec, SwapStrategy
from hxengine.services.binder import Binding
from hxengine.services.history import find_history_root

logger = logging.getLogger(__name__)

Pairs = List[Tuple[str, Any]]


def merge_parameters(existing: Pairs, incoming: Pairs, override: bool = True) -> Pairs:
    """Merge a later parameter source into earlier ones.

    With ``override`` a key present in ``incoming`` replaces every earlier
    value of that key; without it, ``incoming`` only adds new keys. Repeated
    keys inside one source are kept.
    """
    incoming_keys = {key for key, _ in incoming}
    existing_keys = {key for key, _ in existing}
    if override:
        kept = [(key, value) for key, value in existing if key not in incoming_keys]
        return kept + list(incoming)
    return list(existing) + [(key, value) for key, value in incoming if key not in existing_keys]


def filter_parameters(pairs: Pairs, directive: Optional[str]) -> Pairs:
    """Apply an ``hx-params`` directive: ``*``, ``none``, ``not a,b`` or ``a,b``."""
    if directive is None or directive.strip() == "*":
        return pairs
    directive = directive.strip()
    if directive == "none":
        return []
    if directive.startswith("not "):
        excluded = {name.strip() for name in directive[4:].split(",")}
        return [(key, value) for key, value in pairs if key not in excluded]
    allowed = {name.strip() for name in directive.split(",")}
    return [(key, value) for key, value in pairs if key in allowed]


def vals_to_pairs(vals: Dict[str, Any]) -> Pairs:
    pairs: Pairs = []
    for key, value in vals.items():
        if isinstance(value, list):
            pairs.extend((key, item) for item in value)
        else:
            pairs.append((key, value))
    return pairs


class RequestBuilder:
    """Builds RequestDescriptors against one Document."""

    def __init__(self, document: Document, settings: EngineSettings):
        self.document = document
        self.settings = settings

    def build(self, binding: Binding, event_name: Optional[str] = None) -> RequestDescriptor:
        """Build the request for a fired binding. Raises BuildError."""
        if binding.errors:
            raise BuildError("; ".join(binding.errors))

        element = binding.element
        target = self.resolve_target(binding.anchor("hx-target", binding.target or ""), binding.target)
        override = self.settings.later_params_override

        pairs, files = self._source_values(element, binding.method)
        for selector in binding.include:
            found = self.document.resolve(binding.anchor("hx-include", selector), selector)
            if not found:
                raise IncludeNotFoundError(selector)
            included_pairs, included_files = self._included_values(found)
            pairs = merge_parameters(pairs, included_pairs, override)
            files.extend(included_files)
        pairs = merge_parameters(pairs, vals_to_pairs(binding.vals), override)
        pairs = filter_parameters(pairs, binding.params)
        files = filter_parameters(files, binding.params)

        url = urljoin(self.document.url, binding.url)
        encoding = self._encoding(binding.encoding, files)
        if binding.method == HttpMethod.GET:
            files = []

        headers = self.contextual_headers(element, target, event_name)
        headers.update(binding.headers)

        return RequestDescriptor(
            method=binding.method,
            url=url,
            parameters=tuple(pairs),
            files=tuple(files),
            headers=headers,
            encoding=encoding,
            element=element,
            target=target,
            swap=binding.swap,
            select=binding.select,
            sync=self._sync(binding),
            trigger_event=event_name,
            push_url=self._history_url(binding.push_url, url, binding.method, pairs),
            replace_url=self._history_url(binding.replace_url, url, binding.method, pairs),
            history_cache=binding.history,
            indicators=tuple(self._indicators(binding)),
            timeout=binding.timeout,
        )

    def build_navigation(self, url: str, history_restore: bool = False) -> RequestDescriptor:
        """A full-page GET swapped into the history root."""
        root = self.history_root()
        url = urljoin(self.document.url, url)
        headers = {hx.HX_REQUEST: "true", hx.HX_CURRENT_URL: self.document.url}
        if history_restore:
            headers[hx.HX_HISTORY_RESTORE_REQUEST] = "true"
        return RequestDescriptor(
            method=HttpMethod.GET,
            url=url,
            headers=headers,
            element=root,
            target=root,
            swap=SwapSpec(
                strategy=SwapStrategy.INNER_HTML,
                settle_delay=self.settings.default_settle_delay,
            ),
            sync=SyncSpec(scope=root, strategy=SyncStrategy.REPLACE),
            push_url=None if history_restore else url,
            navigation=True,
            history_restore=history_restore,
        )

    def build_ad_hoc(
        self,
        method: str,
        url: str,
        source: Optional[Tag] = None,
        target: Optional[str] = None,
        swap: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> RequestDescriptor:
        """A programmatic request, the equivalent of ``htmx.ajax``."""
        source = source or self.document.body
        target_element = self.resolve_target(source, target) if target else source
        swap_spec = SwapSpec.parse(
            swap,
            default_strategy=self.settings.default_swap_style,
            default_swap_delay=self.settings.default_swap_delay,
            default_settle_delay=self.settings.default_settle_delay,
        )
        all_headers = self.contextual_headers(source, target_element, None)
        all_headers.update(headers or {})
        return RequestDescriptor(
            method=HttpMethod(method.upper()),
            url=urljoin(self.document.url, url),
            parameters=tuple(vals_to_pairs(values or {})),
            headers=all_headers,
            element=source,
            target=target_element,
            swap=swap_spec,
            sync=SyncSpec(
                scope=target_element,
                strategy=SyncStrategy.lookup(self.settings.default_sync_strategy) or SyncStrategy.ABORT,
            ),
        )

    # ------------------------------------------------------------------

    def history_root(self) -> Tag:
        return find_history_root(self.document)

    def resolve_target(self, element: Tag, expression: Optional[str]) -> Tag:
        if not expression:
            return element
        found = self.document.resolve_one(element, expression)
        if found is None:
            raise TargetNotFoundError(expression)
        return found

    def contextual_headers(self, element: Tag, target: Tag, event_name: Optional[str]) -> Dict[str, str]:
        headers = {
            hx.HX_REQUEST: "true",
            hx.HX_TRIGGER: self.document.selector_for(element),
            hx.HX_TARGET: self.document.selector_for(target),
            hx.HX_CURRENT_URL: self.document.url,
        }
        if event_name:
            headers[hx.HX_TRIGGER_EVENT] = event_name
        name = element.get("name")
        if name:
            headers[hx.HX_TRIGGER_NAME] = name
        return headers

    def _source_values(self, element: Tag, method: HttpMethod) -> Tuple[Pairs, List[Tuple[str, FileField]]]:
        """Values contributed by the triggering element itself."""
        containers: List[Tag] = []
        if element.name == "form":
            containers.append(element)
        elif method != HttpMethod.GET:
            form = element.find_parent("form")
            if form is not None:
                containers.append(form)

        fields: List[Tag] = []
        for container in containers:
            for found in Document.fields_in(container):
                if not any(found is seen for seen in fields):
                    fields.append(found)
        if element.name in ("input", "select", "textarea") and not any(element is seen for seen in fields):
            fields.append(element)

        pairs, files = self._field_values(fields)
        if self._is_submitter(element):
            pairs.append((element.get("name"), element.get("value", "")))
        return pairs, files

    def _included_values(self, elements: List[Tag]) -> Tuple[Pairs, List[Tuple[str, FileField]]]:
        fields: List[Tag] = []
        for element in elements:
            for found in Document.fields_in(element):
                if not any(found is seen for seen in fields):
                    fields.append(found)
        return self._field_values(fields)

    def _field_values(self, fields: List[Tag]) -> Tuple[Pairs, List[Tuple[str, FileField]]]:
        pairs: Pairs = []
        files: List[Tuple[str, FileField]] = []
        for element in fields:
            if Document.is_file_input(element):
                name = element.get("name")
                if name and not element.has_attr("disabled"):
                    files.extend((name, f) for f in self.document.files_of(element))
                continue
            pairs.extend(self.document.field_values(element))
        return pairs, files

    @staticmethod
    def _is_submitter(element: Tag) -> bool:
        if not element.get("name"):
            return False
        if element.name == "button":
            return True
        return element.name == "input" and (element.get("type") or "").lower() in ("submit", "image")

    @staticmethod
    def _encoding(directive: Optional[str], files: List[Tuple[str, FileField]]) -> BodyEncoding:
        directive = (directive or "").strip().lower()
        if files or directive == "multipart/form-data":
            return BodyEncoding.MULTIPART
        if directive == "application/json":
            return BodyEncoding.JSON
        return BodyEncoding.URLENCODED

    def _sync(self, binding: Binding) -> SyncSpec:
        scope = binding.element
        if binding.sync_selector:
            anchor = binding.anchor("hx-sync", binding.sync_selector)
            found = self.document.resolve_one(anchor, binding.sync_selector)
            if found is None:
                raise BuildError(f"hx-sync selector matched nothing: {binding.sync_selector}")
            scope = found
        return SyncSpec(scope=scope, strategy=binding.sync_strategy)

    def _indicators(self, binding: Binding) -> List[Tag]:
        if not binding.indicator:
            return [binding.element]
        found = []
        for part in binding.indicator.split(","):
            found.extend(self.document.resolve(binding.anchor("hx-indicator", part), part))
        return found

    @staticmethod
    def _history_url(directive: Optional[str], url: str, method: HttpMethod, pairs: Pairs) -> Optional[str]:
        if directive is None:
            return None
        directive = directive.strip()
        if directive == "false":
            return None
        if directive == "true":
            if method == HttpMethod.GET:
                return RequestDescriptor(url=url, parameters=tuple(pairs)).full_url
            return url
        return urljoin(url, directive)
