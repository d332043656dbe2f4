"""
Content quality scoring for normalized articles.

Every article starts at 100 and loses points for each problem found.
Each deduction comes with a readable issue so operators can see why
an article was rejected.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit

from news_ingest.config import QualitySettings
from news_ingest.services.ingestion.base import (
    QualityAssessment,
    RawArticle,
    as_utc,
    utcnow,
)

SECONDS_PER_DAY = 86400


def is_valid_absolute_url(url: str) -> bool:
    try:
        parts = urlsplit(url.strip())
        parts.port  # raises on a malformed port
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc) and " " not in url.strip()


class QualityValidator:
    """Scores articles 0-100; ``min_valid_score`` and up is admitted."""

    def __init__(
        self,
        settings: Optional[QualitySettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or QualitySettings()
        self.clock = clock

    def assess(self, article: RawArticle) -> QualityAssessment:
        s = self.settings
        issues: list[str] = []
        score = 100

        # Title length
        title_length = len(article.title)
        if title_length < s.min_title_length:
            issues.append(f"Title too short ({title_length} < {s.min_title_length} chars)")
            score -= s.title_too_short_penalty
        elif title_length > s.max_title_length:
            issues.append(f"Title too long ({title_length} > {s.max_title_length} chars)")
            score -= s.title_too_long_penalty

        # Content length
        content_length = len(article.content)
        if content_length < s.min_content_length:
            issues.append(
                f"Content too short ({content_length} < {s.min_content_length} chars)"
            )
            score -= s.content_too_short_penalty

        # Spam indicators
        title_lower = article.title.lower()
        content_lower = article.content.lower()
        for keyword in s.spam_keywords:
            if keyword in title_lower or keyword in content_lower:
                issues.append(f"Contains spam keyword: {keyword}")
                score -= s.spam_keyword_penalty

        # URL
        if not is_valid_absolute_url(article.url):
            issues.append(f"Invalid URL: {article.url}")
            score -= s.invalid_url_penalty

        # Recency
        age_days = (
            as_utc(self.clock()) - as_utc(article.published_at)
        ).total_seconds() / SECONDS_PER_DAY
        if age_days > s.max_age_days:
            issues.append(f"Article too old ({age_days:.0f} days)")
            score -= s.too_old_penalty
        elif age_days < -s.max_future_days:
            issues.append(f"Article published in future ({-age_days:.1f} days ahead)")
            score -= s.future_date_penalty

        return QualityAssessment(
            is_valid=score >= s.min_valid_score,
            score=max(0, score),
            issues=issues,
        )

    def filter(
        self,
        articles: Iterable[RawArticle],
    ) -> tuple[list[RawArticle], list[tuple[RawArticle, QualityAssessment]]]:
        """
        Split ``articles`` into accepted and rejected.

        Returns:
            Tuple of (accepted articles, (article, assessment) for rejects)
        """
        accepted = []
        rejected = []
        for article in articles:
            assessment = self.assess(article)
            article.metadata["quality_score"] = assessment.score
            if assessment.issues:
                article.metadata["quality_issues"] = list(assessment.issues)

            if assessment.is_valid:
                accepted.append(article)
            else:
                rejected.append((article, assessment))
        return accepted, rejected
