"""
Database Schemas

Each collection model below describes the shape of one MongoDB collection.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Video -> "video" collection
- Subscription -> "subscription" collection

References to other documents are stored as bson ObjectIds. The request
models at the bottom validate JSON bodies sent by clients.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(Document):
    """
    Users collection schema
    Collection name: "user"
    """
    username: str = Field(..., min_length=1, description="Lowercase handle, unique")
    email: EmailStr = Field(..., description="Lowercase email, unique")
    full_name: str = Field(..., min_length=1)
    password: str = Field(..., description="Bcrypt hash")
    avatar: str = Field(..., description="Avatar URL")
    cover_image: str = Field("", description="Cover image URL")
    refresh_token: Optional[str] = None
    watch_history: List[ObjectId] = Field(default_factory=list, description="Most recent first")
    subscriber_count: int = Field(0, ge=0)


class Video(Document):
    """
    Videos collection schema
    Collection name: "video"
    """
    video_file: str = Field(..., description="Video URL")
    thumbnail: str = Field(..., description="Thumbnail URL")
    owner: ObjectId
    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list, description="Tags for search")
    duration: float = Field(0, ge=0, description="Length in seconds")
    views: int = Field(0, ge=0, description="View count")
    likes: int = Field(0, ge=0)
    is_published: bool = True


class Tweet(Document):
    content: str = Field(..., min_length=1)
    owner: ObjectId
    image: Optional[str] = None
    likes: int = Field(0, ge=0)


class Comment(Document):
    content: str = Field(..., min_length=1, max_length=500)
    owner: ObjectId
    video: Optional[ObjectId] = None
    tweet: Optional[ObjectId] = None
    parent_comment: Optional[ObjectId] = None
    likes: int = Field(0, ge=0)


class Subscription(Document):
    subscriber: ObjectId = Field(..., description="The user who follows")
    channel: ObjectId = Field(..., description="The user being followed")


class Like(Document):
    """A like carries exactly one of video, comment or tweet."""
    liked_by: ObjectId
    video: Optional[ObjectId] = None
    comment: Optional[ObjectId] = None
    tweet: Optional[ObjectId] = None


class Playlist(Document):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    videos: List[ObjectId] = Field(default_factory=list)
    owner: ObjectId
    is_public: bool = True


class NotificationType(str, Enum):
    LIKE = "LIKE"
    COMMENT = "COMMENT"
    SUBSCRIPTION = "SUBSCRIPTION"
    VIDEO_UPLOAD = "VIDEO_UPLOAD"


class Notification(Document):
    recipient: ObjectId
    sender: Optional[ObjectId] = None
    type: NotificationType
    video: Optional[ObjectId] = None
    comment: Optional[ObjectId] = None
    message: str = Field(..., min_length=1)
    is_read: bool = False


class Search(Document):
    """Search history. Collection name: "search"."""
    query: str = Field(..., min_length=1)
    user: ObjectId
    results_count: int = Field(0, ge=0)
    searched_at: datetime


# Request bodies

class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = ""


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    old_password: str = ""
    new_password: str = ""


class UpdateAccountRequest(BaseModel):
    full_name: str = ""
    email: str = ""


class CommentCreate(BaseModel):
    content: str = ""
    video_id: Optional[str] = None
    tweet_id: Optional[str] = None
    parent_comment_id: Optional[str] = None


class CommentUpdate(BaseModel):
    content: str = ""


class TweetUpdate(BaseModel):
    content: str = ""


class PlaylistCreate(BaseModel):
    name: str = ""
    description: Optional[str] = None
    is_public: bool = True


class PlaylistUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None
