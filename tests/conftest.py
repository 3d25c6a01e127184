import datetime
from types import SimpleNamespace

import pytest
from django.utils import timezone

from query_wizard import QueryWizard
from tests.models import Author, Comment, Post, Profile, Tag


@pytest.fixture
def blog(db):
    ann = Author.objects.create(name="Ann", email="ann@example.com", bio="writes about django")
    bob = Author.objects.create(name="Bob", email="bob@example.com")
    cid = Author.objects.create(name="Cid")
    Profile.objects.create(author=ann, city="Oran", verified=True)
    Profile.objects.create(author=bob, city="Algiers", verified=False)

    django_tag = Tag.objects.create(name="django")
    python_tag = Tag.objects.create(name="python")

    tips = Post.objects.create(
        author=ann,
        title="Django tips",
        body="one two three",
        status="published",
        views=150,
        metadata={"topics": ["web", "python"]},
        published_on=datetime.date(2024, 1, 10),
    )
    tips.tags.add(django_tag, python_tag)
    tricks = Post.objects.create(
        author=ann,
        title="Python tricks",
        body="four five",
        status="draft",
        views=20,
        published_on=datetime.date(2024, 3, 5),
    )
    tricks.tags.add(python_tag)
    gems = Post.objects.create(
        author=bob,
        title="Hidden gems",
        body="six",
        status="published",
        views=300,
        deleted_at=timezone.now(),
    )
    views = Post.objects.create(
        author=bob,
        title="Async views",
        body="seven eight nine ten",
        status="published",
        views=80,
        published_on=datetime.date(2024, 2, 1),
    )

    Comment.objects.create(post=tips, author=bob, body="great", approved=True)
    Comment.objects.create(post=tips, author=cid, body="thanks", approved=True)
    Comment.objects.create(post=tips, author=None, body="spam")
    Comment.objects.create(post=tricks, author=bob, body="nice")
    Comment.objects.create(post=gems, author=ann, body="wow", approved=True)

    return SimpleNamespace(
        ann=ann,
        bob=bob,
        cid=cid,
        tips=tips,
        tricks=tricks,
        gems=gems,
        views=views,
        django_tag=django_tag,
        python_tag=python_tag,
    )


@pytest.fixture
def make_wizard():
    def factory(params=None, subject=None, **kwargs):
        return QueryWizard.for_subject(
            subject if subject is not None else Post.objects.all(), params or {}, **kwargs
        )

    return factory