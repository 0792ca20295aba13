"""
Book Tone Recommendation Model.
"""
from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from booktone.models.base import Base, CreatedAtMixin


class BookToneRecommendation(Base, CreatedAtMixin):
    """
    One generated tone for one book.

    Table: book_tone_recommendations

    Attributes:
        book_id: Book the tone was generated for
        tone: Tone label as returned by the recommender
        feedback: Reader feedback, -1 (disagree), 0 (none) or 1 (agree)
    """

    book_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    tone: Mapped[str] = mapped_column(String(50), nullable=False)
    feedback: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
