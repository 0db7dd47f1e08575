
"""Entrypoint WSGI (gunicorn cardapio_padaria.api.wsgi:app) e execução local."""
from kink import di
from .app import create_app
from ..core.settings import Settings

app = create_app()

if __name__ == "__main__":
    s: Settings = di[Settings]
    app.run(host=s.host, port=s.port, debug=s.flask_debug)
