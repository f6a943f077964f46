"""
Transport for hxengine

Sends RequestDescriptors over an ``httpx.AsyncClient`` and emits the
transport lifecycle events. ``send`` is the engine's only real suspension
point besides configured swap/settle delays.
"""
from __future__ import annotations
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from hxengine.models.events import LifecycleEventKind
from hxengine.models.request import BodyEncoding, HttpMethod, RequestDescriptor, form_value
from hxengine.models.response import HxResponse
from hxengine.services.lifecycle import EventBus

logger = logging.getLogger(__name__)


def json_body(parameters: Tuple[Tuple[str, Any], ...]) -> Dict[str, Any]:
    """Collapse ordered parameters into a JSON object; repeated keys become lists."""
    body: Dict[str, Any] = {}
    repeated = set()
    for key, value in parameters:
        if key not in body:
            body[key] = value
        elif key in repeated:
            body[key].append(value)
        else:
            body[key] = [body[key], value]
            repeated.add(key)
    return body


def multipart_body(fields: List[Tuple[str, str]]) -> Tuple[bytes, str]:
    """Encode text-only multipart/form-data (httpx needs files to go multipart)."""
    boundary = uuid.uuid4().hex
    chunks = []
    for name, value in fields:
        chunks.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        )
    chunks.append(f"--{boundary}--\r\n")
    return "".join(chunks).encode("utf-8"), f"multipart/form-data; boundary={boundary}"


class Transport:
    """Issues requests and reports their outcome on the event bus."""

    def __init__(self, client: httpx.AsyncClient, bus: EventBus, timeout: float = 0.0):
        self.client = client
        self.bus = bus
        self.timeout = timeout

    def build_request(self, descriptor: RequestDescriptor) -> httpx.Request:
        method = descriptor.method.value
        headers = dict(descriptor.headers)
        if descriptor.method == HttpMethod.GET:
            return self.client.build_request(method, descriptor.full_url, headers=headers)

        if descriptor.encoding == BodyEncoding.JSON:
            return self.client.build_request(
                method, descriptor.url, headers=headers, json=json_body(descriptor.parameters)
            )
        if descriptor.encoding == BodyEncoding.MULTIPART:
            if not descriptor.files:
                content, content_type = multipart_body(
                    [(key, form_value(value)) for key, value in descriptor.parameters]
                )
                headers["Content-Type"] = content_type
                return self.client.build_request(method, descriptor.url, headers=headers, content=content)
            data: Dict[str, List[str]] = {}
            for key, value in descriptor.parameters:
                data.setdefault(key, []).append(form_value(value))
            files = [
                (name, (f.filename, f.content, f.content_type)) for name, f in descriptor.files
            ]
            return self.client.build_request(method, descriptor.url, headers=headers, data=data, files=files)

        headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
        content = urlencode([(key, form_value(value)) for key, value in descriptor.parameters])
        return self.client.build_request(method, descriptor.url, headers=headers, content=content)

    async def send(self, descriptor: RequestDescriptor) -> Optional[HxResponse]:
        """Send one request.

        Returns None when a listener vetoed it, the network failed or it
        timed out; the matching lifecycle event has been emitted. Cancellation
        propagates as CancelledError with no event.
        """
        event = self.bus.emit(
            LifecycleEventKind.BEFORE_REQUEST,
            request=descriptor,
            element=descriptor.element,
            detail={"headers": dict(descriptor.headers), "parameters": list(descriptor.parameters)},
        )
        if event.vetoed:
            logger.debug("Request %s vetoed by before-request listener", descriptor.request_id)
            return None
        descriptor = descriptor.model_copy(
            update={
                "headers": dict(event.detail["headers"]),
                "parameters": tuple(tuple(pair) for pair in event.detail["parameters"]),
            }
        )

        timeout = descriptor.timeout if descriptor.timeout is not None else self.timeout
        request = self.build_request(descriptor)
        logger.debug("%s %s", request.method, request.url)
        try:
            if timeout:
                response = await asyncio.wait_for(self.client.send(request), timeout)
            else:
                response = await self.client.send(request)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("Request %s timed out: %s %s", descriptor.request_id, request.method, request.url)
            self.bus.emit(LifecycleEventKind.TIMEOUT, request=descriptor, element=descriptor.element, error=e)
            return None
        except httpx.HTTPError as e:
            logger.warning("Request %s failed: %s", descriptor.request_id, e)
            self.bus.emit(LifecycleEventKind.SEND_ERROR, request=descriptor, element=descriptor.element, error=e)
            return None

        result = HxResponse(
            request=descriptor,
            status_code=response.status_code,
            headers={key.lower(): value for key, value in response.headers.items()},
            text=response.text,
            url=str(response.url),
        )
        self.bus.emit(
            LifecycleEventKind.AFTER_REQUEST,
            request=descriptor,
            response=result,
            element=descriptor.element,
            detail={"status_code": result.status_code, "successful": result.is_success},
        )
        return result
