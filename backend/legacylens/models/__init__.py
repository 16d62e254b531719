"""SQLAlchemy models"""
