from starlette.requests import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        cl = request.headers.get("content-length")
        if cl is not None:
            try:
                too_large = int(cl) > self.max_bytes
            except ValueError:
                return JSONResponse(status_code=400, content={"detail": "Bad Content-Length"})
            if too_large:
                return JSONResponse(status_code=413, content={"detail": "File too large"})
        return await call_next(request)
