# Domain Stats Package
from .models import DayActivity, ItemCounts, ProgressSnapshot, StudyRecommendations

__all__ = ["DayActivity", "ItemCounts", "ProgressSnapshot", "StudyRecommendations"]
