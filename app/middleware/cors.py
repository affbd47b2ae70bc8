from starlette.requests import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class FunctionCORSMiddleware(BaseHTTPMiddleware):
    """
    CORS for the cloud function: every response allows the configured origin
    and any OPTIONS request is answered as a preflight with 204.
    """

    def __init__(self, app, allow_origin: str = "*", allow_methods: str = "POST",
                 allow_headers: str = "Authorization, Content-Type", max_age: int = 3600):
        super().__init__(app)
        self.allow_origin = allow_origin
        self.preflight_headers = {
            "Access-Control-Allow-Methods": allow_methods,
            "Access-Control-Allow-Headers": allow_headers,
            "Access-Control-Max-Age": str(max_age),
        }

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204, headers=self.preflight_headers)
        else:
            response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = self.allow_origin
        return response
