"""
Course model definitions used for learning-progress tracking.
"""
from datetime import datetime
from typing import List
from pydantic import BaseModel, Field

class Lesson(BaseModel):
    """
    A lesson inside a course module.
    """
    id: int
    module_id: int
    title: str

class CourseModule(BaseModel):
    """
    A course module grouping lessons.
    """
    id: int
    title: str
    order_index: int = 0
    lessons: List[Lesson] = Field(default_factory=list)

class LessonProgress(BaseModel):
    """
    Records that a user completed a lesson.
    """
    user_id: str
    lesson_id: int
    completed_at: datetime
