from __future__ import annotations

from restaurant_recs.analytics.aggregator import compute_stats


def test_stats_on_empty_store(store):
    stats = compute_stats(store)
    assert stats.total_restaurants == 0
    assert stats.overall_avg_rating == 0.0
    assert stats.preferences_fraction == 0.0
    assert stats.cuisine_distribution == []


def test_stats_counts(store, seeded):
    stats = compute_stats(store)
    assert stats.total_restaurants == 7
    assert stats.total_users == 8
    assert stats.total_reviews == 15
    assert stats.users_with_preferences == 3
    assert stats.preferences_fraction == 0.375


def test_stats_overall_average_is_mean_of_restaurant_averages(store, seeded):
    expected = (5.0 + 13 / 3 + 14 / 3 + 11 / 3 + 3.0 + 4.0 + 2.0) / 7
    assert compute_stats(store).overall_avg_rating == round(expected, 2)


def test_stats_distributions(store, seeded):
    stats = compute_stats(store)
    assert [(b.name, b.count) for b in stats.cuisine_distribution] == [
        ("Italian", 2),
        ("Mexican", 2),
        ("American", 1),
        ("French", 1),
        ("Japanese", 1),
    ]
    assert [(b.name, b.count) for b in stats.price_distribution] == [
        ("$", 3),
        ("$$", 2),
        ("$$$", 1),
        ("$$$$", 1),
    ]


def test_stats_endpoint_is_public(client):
    resp = client.get("/recommendations/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_restaurants"] == 7
    assert body["cuisine_distribution"][0] == {"name": "Italian", "count": 2}
