"""
Database Schemas for the Portfolio API

Each content model = one MongoDB collection (see CONTENT_COLLECTIONS).
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# Auth
class LoginRequest(BaseModel):
    email: str
    password: str

# Content
class Project(BaseModel):
    title: str
    description: str
    tech: List[str] = []
    cover: Optional[str] = None  # image url
    demo_url: Optional[str] = None
    repo_url: Optional[str] = None
    featured: bool = False
    views: int = Field(default=0, ge=0)

class BlogPost(BaseModel):
    title: str
    slug: str
    excerpt: str
    content: str
    tags: List[str] = []
    read_time: int = 4
    cover: Optional[str] = None
    published: bool = True
    views: int = Field(default=0, ge=0)

class Certification(BaseModel):
    title: str
    issuer: str
    issued: str
    credential_url: Optional[str] = None
    image: Optional[str] = None
    views: int = Field(default=0, ge=0)

class Testimonial(BaseModel):
    name: str
    role: str
    company: Optional[str] = None
    quote: str
    avatar: Optional[str] = None

class Experience(BaseModel):
    org: str
    role: str
    start: str
    end: str
    summary: str

CONTENT_COLLECTIONS = {
    "posts": BlogPost,
    "projects": Project,
    "certifications": Certification,
    "testimonials": Testimonial,
    "experience": Experience,
}

# Contact messages
class ContactStatus(str, Enum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    ARCHIVED = "archived"

class ContactSubmission(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    message: str = Field(min_length=10, max_length=5000)
    project_type: Literal["freelance", "fulltime", "contract", "other", "student"] = Field(
        default="other", alias="projectType"
    )
    budget: Optional[str] = None
    company: Optional[str] = None

    model_config = {"populate_by_name": True}

class Reply(BaseModel):
    message: str
    sentAt: datetime
    admin: str

class ReplyRequest(BaseModel):
    message: str
    subject: Optional[str] = None

class StatusUpdate(BaseModel):
    status: ContactStatus

class BulkAction(BaseModel):
    ids: List[str] = Field(min_length=1)
    action: Literal["delete", "update"]
    status: Optional[ContactStatus] = None
