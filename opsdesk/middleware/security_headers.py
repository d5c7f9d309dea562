"""
Response hardening for the JSON API.

``init_security_headers(app)`` sets the headers in ``API_SECURITY_HEADERS``
on every response (without overriding a value a view already chose) and
strips the ``Server`` banner. Attachment downloads (invoice exports) keep
their own Content-Type and Content-Disposition.
"""

API_SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}


def init_security_headers(app):
    @app.after_request
    def _add_security_headers(response):
        for name, value in API_SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if response.mimetype == "application/json":
            response.headers.setdefault("Cache-Control", "no-store")
        response.headers.pop("Server", None)
        return response
