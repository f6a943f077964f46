"""
Header names exchanged between the engine and the server.

Request headers (sent by the engine):

- ``HX-Request``: always ``true``; marks a hypermedia-aware request.
- ``HX-Trigger``: CSS selector of the element that issued the request.
- ``HX-Trigger-Name``: ``name`` attribute of that element, when it has one.
- ``HX-Target``: CSS selector of the swap target.
- ``HX-Trigger-Event``: name of the runtime event that fired the trigger.
- ``HX-Current-URL``: the document URL at the time of the request.
- ``HX-History-Restore-Request``: ``true`` when re-fetching a page after a
  history cache miss.

Response headers (honoured by the engine):

- ``HX-Push-Url`` / ``HX-Replace-Url``: push or replace the browser URL;
  ``false`` disables the element's own push/replace directive.
- ``HX-Trigger``: custom events dispatched after the swap, either a JSON
  object ``{"name": detail}`` or a comma separated list of names.
- ``HX-Trigger-After-Settle``: same format, dispatched after settle.
- ``HX-Retarget``: CSS selector replacing the element's target.
- ``HX-Reswap``: swap specification replacing the element's ``hx-swap``.
- ``HX-Reselect``: CSS selector replacing the element's ``hx-select``.
- ``HX-Swap-Response``: ``true`` forces a swap whatever the status code,
  ``false`` suppresses it.
- ``HX-Redirect``: navigate to the URL (fetch it into the history root and
  push it).
"""

HX_REQUEST = "HX-Request"
HX_TRIGGER = "HX-Trigger"
HX_TRIGGER_NAME = "HX-Trigger-Name"
HX_TARGET = "HX-Target"
HX_TRIGGER_EVENT = "HX-Trigger-Event"
HX_CURRENT_URL = "HX-Current-URL"
HX_HISTORY_RESTORE_REQUEST = "HX-History-Restore-Request"

HX_PUSH_URL = "HX-Push-Url"
HX_REPLACE_URL = "HX-Replace-Url"
HX_TRIGGER_AFTER_SETTLE = "HX-Trigger-After-Settle"
HX_RETARGET = "HX-Retarget"
HX_RESWAP = "HX-Reswap"
HX_RESELECT = "HX-Reselect"
HX_SWAP_RESPONSE = "HX-Swap-Response"
HX_REDIRECT = "HX-Redirect"
