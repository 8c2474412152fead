"""
Reverse proxy that mirrors a site behind another host, rewriting the backend
origin in bodies, redirects and cookies.
"""
