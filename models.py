from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class CachedSitemap(Base):
    __tablename__ = 'cached_sitemaps'

    key = Column(String(200), primary_key=True)
    document = Column(Text, nullable=False)
    page_count = Column(Integer, nullable=False, default=1)
    generated_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CachedSitemap(key='{self.key}', generated_at={self.generated_at}, size={len(self.document or '')})>"
