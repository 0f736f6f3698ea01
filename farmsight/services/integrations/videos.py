from typing import List, Optional, Protocol

CATEGORIES = [
    {
        "id": "drought",
        "name": "Drought Management",
        "description": "Videos about drought identification and irrigation techniques",
        "query": "crop drought management irrigation",
    },
    {
        "id": "pests",
        "name": "Pest Control",
        "description": "Pest identification and treatment methods",
        "query": "crop pest control identification treatment",
    },
    {
        "id": "nutrients",
        "name": "Nutrient Management",
        "description": "Soil health and fertilizer applications",
        "query": "crop nutrient deficiency fertilizer management",
    },
    {
        "id": "irrigation",
        "name": "Irrigation Systems",
        "description": "Water management and irrigation technology",
        "query": "farm irrigation systems water management",
    },
    {
        "id": "harvesting",
        "name": "Harvesting Techniques",
        "description": "Best practices for crop harvesting",
        "query": "crop harvesting techniques timing",
    },
    {
        "id": "general",
        "name": "General Farming",
        "description": "General agricultural best practices",
        "query": "agriculture farming best practices",
    },
]


def _video(video_id, title, description, duration, channel, published_at, category, tags):
    return {
        "video_id": video_id,
        "title": title,
        "description": description,
        "url": f"https://www.youtube.com/watch?v={video_id}",
        "thumbnail": f"https://img.youtube.com/vi/{video_id}/default.jpg",
        "duration": duration,
        "channel_name": channel,
        "published_at": published_at,
        "category": category,
        "tags": tags,
    }


VIDEOS = [
    _video("drought_101", "Drought Stress Identification in Crops",
           "Learn how to identify early signs of drought stress in your crops",
           "8:45", "FarmSight Education", "2024-01-15", "drought",
           ["drought", "stress", "identification", "crops"]),
    _video("irrigation_101", "Efficient Irrigation Techniques",
           "Best practices for water management during drought conditions",
           "12:30", "Agricultural Tech", "2024-02-01", "irrigation",
           ["irrigation", "water", "drought", "efficiency"]),
    _video("pest_id_101", "Common Crop Pests Identification",
           "Visual guide to identifying common agricultural pests",
           "15:20", "Plant Health Clinic", "2024-01-20", "pests",
           ["pests", "identification", "crops", "agriculture"]),
    _video("nutrients_101", "Understanding Nutrient Deficiency",
           "Complete guide to identifying and treating nutrient deficiencies",
           "18:45", "Crop Nutrition", "2024-02-10", "nutrients",
           ["nutrients", "fertilizer", "deficiency", "soil"]),
    _video("harvest_101", "Timing Your Harvest",
           "Reading crop maturity signals to pick the right harvest window",
           "11:05", "FarmSight Education", "2024-03-02", "harvesting",
           ["harvesting", "timing", "yield"]),
    _video("video_001", "Understanding Crop Stress Factors",
           "Comprehensive guide to identifying various types of crop stress",
           "10:30", "FarmSight Education", "2024-01-10", "general",
           ["crop stress", "agriculture", "farming"]),
    _video("video_002", "Modern Farming Techniques",
           "Learn about the latest technology in agricultural management",
           "14:15", "AgTech Solutions", "2024-01-25", "general",
           ["technology", "farming", "modern agriculture"]),
    _video("video_003", "Sustainable Farming Practices",
           "Eco-friendly approaches to crop management",
           "12:00", "Green Agriculture", "2024-02-05", "general",
           ["sustainable", "eco-friendly", "organic farming"]),
]

# Which video categories address each stress level
STRESS_CATEGORIES = {
    "severe": ["drought", "irrigation", "pests"],
    "high": ["drought", "irrigation", "nutrients"],
    "moderate": ["nutrients", "irrigation"],
    "low": ["general", "nutrients"],
    "healthy": ["general", "harvesting"],
}


def _searchable_text(video: dict) -> str:
    return " ".join([video["title"], video["description"], *video["tags"]]).lower()


def _mentions(video: dict, term: str) -> bool:
    return term in _searchable_text(video)


class VideoCatalog(Protocol):
    def by_category(self, category: str, max_results: int = 20) -> List[dict]:
        ...

    def recommended(self, stress_type: str, crop_type: Optional[str] = None) -> List[dict]:
        ...

    def search(self, query: str, max_results: int = 10) -> List[dict]:
        ...


class StaticVideoCatalog:
    """Curated in-process catalog."""

    def __init__(self, videos: Optional[List[dict]] = None):
        self.videos = videos if videos is not None else VIDEOS

    def by_category(self, category: str, max_results: int = 20) -> List[dict]:
        return [v for v in self.videos if v["category"] == category][:max_results]

    def recommended(self, stress_type: str, crop_type: Optional[str] = None) -> List[dict]:
        # Stress types outside the level table fall back to drought content
        categories = STRESS_CATEGORIES.get(stress_type, ["drought"])
        if stress_type in {c["id"] for c in CATEGORIES}:
            categories = [stress_type]

        videos = [v for v in self.videos if v["category"] in categories]
        if not crop_type:
            return videos

        # Videos mentioning the crop go first, catalog order otherwise
        crop = crop_type.lower()
        return sorted(videos, key=lambda v: not _mentions(v, crop))

    def search(self, query: str, max_results: int = 10) -> List[dict]:
        terms = query.lower().split()

        def score(video):
            text = _searchable_text(video)
            return sum(term in text for term in terms)

        ranked = sorted(
            (v for v in self.videos if score(v) > 0),
            key=score,
            reverse=True,
        )
        return ranked[:max_results]
