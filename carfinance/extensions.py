import os
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager

# Global extension instances
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()

# AI client placeholder (initialized in factory)
ai_client = None
GEMINI_RECOMMENDER_MODEL_ID = os.environ.get("GEMINI_RECOMMENDER_MODEL_ID", "gemini-3-flash-preview")
