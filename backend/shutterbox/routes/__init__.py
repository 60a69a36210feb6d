# Routes package init
"""
ShutterBox Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:    POST /signup, POST /login, POST /avatar
    - users.py:   GET/DELETE /users/{username}
                  POST/DELETE /users/{username}/follow
                  GET /users/{username}/favorites, /followed
    - images.py:  POST /images, GET /images/recent, /images/featured
                  GET/DELETE /images/{shortcode}
                  POST/DELETE /images/{shortcode}/favorite
    - files.py:   GET /files/{location}/{shortcode}
    - health.py:  GET /health

Routes stay thin: parse the request, call a service, pick the status code.
Errors are raised as ShutterBoxError subclasses and formatted by the
handlers registered in main.py.
"""
