from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Note: models are registered on Base.metadata by importing app.db.models
# All models must import Base from this module
