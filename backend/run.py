"""
Application entry point
Toll sync backend

Usage:
    python run.py

Environment:
    - copy env.example to .env
    - adjust the values as needed
"""
import sys
import os

# Add the backend directory to the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app import create_app
from app.config import get_config

config_class = get_config()

app = create_app(config_class)

if __name__ == '__main__':
    env = os.environ.get('FLASK_ENV', 'development')
    if env == 'production':
        for problem in config_class.validate():
            print(f"⚠️  {problem}")

    port = int(os.environ.get('PORT', '8000'))

    print("=" * 60)
    print("Toll Sync Backend")
    print("=" * 60)
    print(f"📌 Server: http://localhost:{port}")
    print(f"📌 API: http://localhost:{port}/api")
    print(f"📌 Environment: {env}")
    print(f"📌 Database: {app.config['SQLALCHEMY_DATABASE_URI'].split('@')[-1]}")
    print(f"📌 CORS origins: {', '.join(config_class.CORS_ORIGINS)}")

    if app.config.get('CREDENTIAL_ENCRYPTION_KEY'):
        print("🔒 Credential encryption: dedicated key")
    else:
        print("⚠️  Credential encryption: key derived from SECRET_KEY (set CREDENTIAL_ENCRYPTION_KEY)")

    if app.config.get('API_KEY'):
        print("🔒 Client authentication: enabled")
    else:
        print("⚠️  Client authentication: disabled (set API_KEY)")

    if app.config.get('ADMIN_API_KEY'):
        print("🔒 Admin authentication: enabled")
    else:
        print("⚠️  Admin authentication: disabled (set ADMIN_API_KEY)")

    print("=" * 60)

    app.run(host='0.0.0.0', port=port, debug=(env == 'development'), use_reloader=False)
