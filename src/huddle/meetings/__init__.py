"""Meeting domain -- schemas, persistence, lifecycle, and post-meeting intelligence.

Provides the meeting data layer (Pydantic schemas, SQLAlchemy models,
MeetingRepository with optimistic versioning), the lifecycle controller
that owns status transitions, the audio artifact store, and the
summary assistant and email intake services.
"""
