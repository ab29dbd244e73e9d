"""
Shopping Assistant — Demo Catalog
sample_data.py

Five flagship smartphones and their review aggregates. Seeds the
in-memory backends so the service is usable without a database.
"""
from __future__ import annotations

from models import (
    KeywordFrequency, Product, QualityIndicator, ReviewAggregate,
    SentimentDistribution,
)


def _aggregate(
    product_id: str,
    total: int,
    rating: float,
    sentiment: tuple[int, int, int],
    keywords: list[tuple[str, int]],
    indicators: list[tuple[str, int]],
    issues: list[str],
    aspects: list[str],
) -> ReviewAggregate:
    positive, negative, neutral = sentiment
    return ReviewAggregate(
        product_id=product_id,
        total_comments=total,
        average_rating=rating,
        sentiment_distribution=SentimentDistribution(
            positive=positive, negative=negative, neutral=neutral),
        top_keywords=[KeywordFrequency(keyword=k, frequency=f) for k, f in keywords],
        quality_indicators=[QualityIndicator(indicator=i, mentions=m) for i, m in indicators],
        common_issues=issues,
        positive_aspects=aspects,
    )


def sample_products() -> list[Product]:
    rows = [
        ('1', 'iPhone 15 Pro Max', 'Apple', 1199, 4.8, 2547, 'Amazon', 'iphone-15-pro-max'),
        ('2', 'Samsung Galaxy S24 Ultra', 'Samsung', 1299, 4.7, 1892, 'Amazon', 'galaxy-s24-ultra'),
        ('3', 'Google Pixel 8 Pro', 'Google', 999, 4.6, 1234, 'Best Buy', 'pixel-8-pro'),
        ('4', 'OnePlus 12', 'OnePlus', 799, 4.5, 892, 'Amazon', 'oneplus-12'),
        ('5', 'Xiaomi 14 Ultra', 'Xiaomi', 699, 4.4, 567, 'AliExpress', 'xiaomi-14-ultra'),
    ]
    return [
        Product(
            id=pid,
            name=name,
            brand=brand,
            price=price,
            category='Smartphones',
            rating=rating,
            review_count=reviews,
            source_platform=platform,
            image_url=f"https://via.placeholder.com/300x300?text={slug}",
            product_url=f"https://example.com/{slug}",
        )
        for pid, name, brand, price, rating, reviews, platform, slug in rows
    ]


def sample_review_aggregates() -> list[ReviewAggregate]:
    return [
        _aggregate(
            '1', 2547, 4.8, (2150, 150, 247),
            [('premium', 892), ('quality', 756), ('camera', 634),
             ('battery', 521), ('design', 487)],
            [('excellent build quality', 445), ('premium materials', 389),
             ('long-lasting battery', 334), ('superb camera', 298),
             ('smooth performance', 276)],
            ['expensive', 'heavy', 'learning curve'],
            ['build quality', 'camera system', 'battery life', 'display', 'performance'],
        ),
        _aggregate(
            '2', 1892, 4.7, (1583, 132, 177),
            [('display', 654), ('camera', 589), ('battery', 521),
             ('performance', 467), ('premium', 423)],
            [('amazing display', 398), ('versatile camera', 356),
             ('all-day battery', 298), ('powerful performance', 267),
             ('premium build', 234)],
            ['pricey', 'complex features', 'size'],
            ['display quality', 'camera versatility', 'battery life', 'S Pen', 'performance'],
        ),
        _aggregate(
            '3', 1234, 4.6, (1021, 98, 115),
            [('camera', 445), ('pure android', 389), ('ai features', 334),
             ('battery', 298), ('value', 267)],
            [('excellent camera', 298), ('clean android', 234),
             ('great value', 198), ('ai photography', 167),
             ('reliable battery', 145)],
            ['heating', 'limited storage', 'availability'],
            ['camera quality', 'stock android', 'ai features', 'price point',
             'google integration'],
        ),
        _aggregate(
            '4', 892, 4.5, (734, 89, 69),
            [('fast charging', 334), ('performance', 298), ('value', 267),
             ('oxygen os', 234), ('smooth', 198)],
            [('super fast charging', 234), ('smooth performance', 198),
             ('great value', 167), ('clean software', 145),
             ('reliable build', 123)],
            ['camera could be better', 'no wireless charging', 'availability'],
            ['charging speed', 'performance', 'software', 'price', 'build quality'],
        ),
        _aggregate(
            '5', 567, 4.4, (456, 67, 44),
            [('affordable', 234), ('camera', 198), ('battery', 167),
             ('value', 145), ('miui', 123)],
            [('affordable price', 167), ('good camera', 145),
             ('decent battery', 123), ('great value', 98), ('solid build', 87)],
            ['miui ads', 'bloatware', 'availability'],
            ['price', 'camera', 'battery life', 'build quality', 'features'],
        ),
    ]
