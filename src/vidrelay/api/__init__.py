"""HTTP request layer: FastAPI routes over :class:`~vidrelay.pipeline.MediaPipeline`.

Maps :class:`~vidrelay.exceptions.VidRelayError` subclasses to HTTP
status codes; no business logic lives here.
"""

from vidrelay.api.app import create_app

__all__: list[str] = ["create_app"]
