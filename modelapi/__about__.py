__version__ = "0.1.0"
__description__ = "modelapi : metadata driven REST queries and mutations for Flask-SQLAlchemy models"
