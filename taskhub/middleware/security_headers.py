"""
Security headers middleware.

The service only speaks JSON (and evidence downloads), so the policy is
strict: nothing may be framed, sniffed or scripted.

Usage:
    from taskhub.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")

        # Prevent MIME-type sniffing (evidence files are user-supplied)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP, but ready for production)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )

        response.headers.setdefault("Referrer-Policy", "no-referrer")

        response.headers.pop("Server", None)
        return response
