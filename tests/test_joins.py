"""
tests/test_joins.py

Polymorphic join builder: validation of the target and the generated
join clause, plus end-to-end queries.
"""
import pytest
from sqlalchemy import select

from polyref import (
    PolymorphicJoinError,
    build_join,
    declare_polymorphic_slot,
    get_join_function,
    joins,
    select_joined,
)
from polyref.joins import collection_name

from tests.models import Account, Badge, Coin, Comment, FeaturedPost, Photo, Post, Tagging, User


def compile_sql(stmt) -> str:
    return str(stmt.compile(compile_kwargs={"literal_binds": True}))


class TestJoinClause:

    def test_join_sql(self):
        sql = str(select_joined(Comment, "commentable", Post))
        assert "JOIN posts ON" in sql
        assert "comments.commentable_id = posts.id" in sql
        assert "comments.commentable_type" in sql

    def test_type_literal(self):
        sql = compile_sql(select_joined(Comment, "commentable", Post))
        assert "comments.commentable_type = 'Post'" in sql

    def test_other_target(self):
        sql = compile_sql(select_joined(Tagging, "taggable", User))
        assert "JOIN users ON taggings.taggable_id = users.id" in sql
        assert "taggings.taggable_type = 'User'" in sql

    def test_subclass_target_joins_base(self):
        join = joins(Comment, "commentable", FeaturedPost)
        assert join.target is Post
        assert "comments.commentable_type = 'Post'" in compile_sql(join.select())

    def test_outer_join(self):
        join = joins(Comment, "commentable", Post)
        sql = str(join.apply(select(Comment), isouter=True))
        assert "LEFT OUTER JOIN posts" in sql

    def test_select_explicit_entities(self):
        sql = str(joins(Comment, "commentable", Post).select(Comment.id))
        assert sql.startswith("SELECT comments.id")
        assert "FROM comments JOIN posts" in sql

    def test_composable(self):
        stmt = select_joined(Comment, "commentable", Post).where(Post.title == "Hello")
        assert "WHERE posts.title = 'Hello'" in compile_sql(stmt)


class TestJoinValidation:

    def test_missing_inverse_rejected(self):
        with pytest.raises(PolymorphicJoinError) as exc:
            joins(Comment, "commentable", Account)
        assert str(exc.value) == (
            "Polymorphic join requires Account to declare: "
            "comments = polymorphic_inverse('Comment', as_='commentable')"
        )
        assert exc.value.target == "Account"
        assert exc.value.to_dict()["missing_declaration"].startswith("comments =")

    def test_inverse_for_other_slot_rejected(self):
        # Post declares comments/taggings but no photo
        with pytest.raises(PolymorphicJoinError, match="Post to declare: photos"):
            joins(Photo, "imageable", Post)

    def test_subclass_target_named_by_base(self):
        with pytest.raises(PolymorphicJoinError) as exc:
            joins(Photo, "imageable", FeaturedPost)
        assert exc.value.target == "Post"
        assert str(exc.value).startswith("Polymorphic join requires Post to declare: photos = ")

    def test_cleared_registry_forgets_built_joins(self, clean_registry):
        joins(Comment, "commentable", Post)
        clean_registry.clear()
        with pytest.raises(PolymorphicJoinError, match="does not declare polymorphic slot"):
            build_join(Comment, "commentable", Post)

    def test_has_one_inverse_accepted(self):
        join = joins(Photo, "imageable", User)
        assert join.target is User

    def test_non_mapped_target(self):
        with pytest.raises(PolymorphicJoinError, match="Expected a mapped entity class, got str"):
            joins(Comment, "commentable", str)

    def test_instance_target(self):
        with pytest.raises(PolymorphicJoinError, match="Expected a mapped entity class"):
            joins(Comment, "commentable", Post(title="x"))

    def test_undeclared_slot(self):
        with pytest.raises(PolymorphicJoinError, match="Coin does not declare polymorphic slot 'nope'"):
            get_join_function(Coin, "nope")
        with pytest.raises(PolymorphicJoinError, match="does not declare polymorphic slot"):
            build_join(Comment, "nope", Post)

    def test_unregistered_target_is_introspected(self, clean_registry):
        clean_registry.clear()
        declare_polymorphic_slot(Comment, "commentable")
        assert not clean_registry.is_registered("Post")
        joins(Comment, "commentable", Post)
        assert clean_registry.is_registered("Post")


class TestJoinFunctions:

    def test_declare_is_idempotent(self):
        first = declare_polymorphic_slot(Comment, "commentable")
        second = declare_polymorphic_slot(Comment, "commentable")
        assert first is second
        assert first.__name__ == "joins_commentable"

    def test_join_function(self):
        joins_commentable = get_join_function(Comment, "commentable")
        join = joins_commentable(Post)
        assert join.source is Comment
        assert join.slot == "commentable"

    def test_built_join_is_cached(self):
        assert build_join(Comment, "commentable", Post) is build_join(Comment, "commentable", Post)

    def test_collection_name(self):
        assert collection_name("Comment") == "comments"
        assert collection_name("BlogComment") == "blog_comments"
        assert collection_name("Category") == "categories"
        assert collection_name("Address") == "addresses"


class TestJoinQueries:

    def test_comments_of_one_post(self, db_session, make):
        post = make.post("Hello")
        other = make.post("Other")
        user = make.user()
        on_post = [make.comment(post), make.comment(post)]
        make.comment(other)
        make.comment(user)

        stmt = select_joined(Comment, "commentable", Post).where(Post.id == post.id)
        result = db_session.scalars(stmt).all()

        assert sorted(c.id for c in result) == sorted(c.id for c in on_post)

    def test_only_matching_type(self, db_session, make):
        post = make.post()
        user = make.user()
        # same id, different type
        assert post.id == user.id
        make.comment(post, body="on post")
        make.comment(user, body="on user")

        result = db_session.scalars(select_joined(Comment, "commentable", User)).all()

        assert [c.body for c in result] == ["on user"]

    def test_subclass_records(self, db_session, make):
        featured = make.featured_post()
        comment = make.comment(featured)
        assert comment.commentable_type == "Post"

        stmt = select_joined(Comment, "commentable", FeaturedPost).where(Post.id == featured.id)
        assert db_session.scalars(stmt).all() == [comment]

    def test_has_one(self, db_session, make):
        user = make.user()
        photo = make.photo(user)

        result = db_session.scalars(select_joined(Photo, "imageable", User)).all()

        assert result == [photo]
        assert user.photo is photo

    def test_inverse_relationship_loads(self, db_session, make):
        post = make.post()
        comments = [make.comment(post), make.comment(post)]
        make.comment(make.user())

        db_session.expire(post)

        assert sorted(c.id for c in post.comments) == sorted(c.id for c in comments)

    def test_post_and_user_scenario(self, db_session, make):
        """One post, one user, two comments on the post and one on the user."""
        post = make.post()
        user = make.user()
        expected = {make.comment(post).id, make.comment(post).id}
        make.comment(user)

        joins_commentable = get_join_function(Comment, "commentable")
        stmt = joins_commentable(Post).select().where(Post.id == post.id)

        assert {c.id for c in db_session.scalars(stmt)} == expected
        assert len(db_session.scalars(joins_commentable(User).select()).all()) == 1


class TestStringIdColumns:
    """Slot id stored in a String column, target keyed by Integer."""

    def test_key_cast_to_id_type(self):
        sql = compile_sql(select_joined(Badge, "holder", User))
        assert "badges.holder_id = CAST(users.id AS VARCHAR(255))" in sql
        assert "badges.holder_type = 'User'" in sql

    def test_same_type_not_cast(self):
        assert "CAST" not in compile_sql(select_joined(Comment, "commentable", Post))

    def test_query(self, db_session, make):
        user = make.user()
        badge = make.badge(holder=user)
        make.badge(holder=make.user("bob"))

        stmt = select_joined(Badge, "holder", User).where(User.id == user.id)

        assert db_session.scalars(stmt).all() == [badge]

    def test_reference_and_inverse(self, db_session, make):
        user = make.user()
        badge = make.badge(holder=user)
        assert badge.holder_id == str(user.id)

        db_session.expire_all()

        assert badge.holder is user
        assert user.badges == [badge]
