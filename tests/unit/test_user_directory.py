"""
Unit tests for UserDirectory.

Tests password hashing and verification, account lookup and registration.
"""
import pytest
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.models import User
from app.services.auth.directory import UserDirectory, check_password, hash_password
from app.services.auth.errors import ConflictError
from app.services.auth_schemas import CreateUserInput, LoginInput
from tests.factories import TEST_PASSWORD, create_user


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_password_returns_hash(self):
        hashed = hash_password("Secret1!")

        assert hashed != "Secret1!"
        assert hashed.startswith("$2b$")  # bcrypt prefix

    def test_hash_password_is_unique(self):
        assert hash_password("Secret1!") != hash_password("Secret1!")  # Different salts

    def test_check_password_correct(self):
        assert check_password(hash_password("Secret1!"), "Secret1!") is True

    def test_check_password_incorrect(self):
        assert check_password(hash_password("Secret1!"), "wrong") is False

    def test_check_password_empty(self):
        assert check_password(hash_password("Secret1!"), "") is False

    def test_check_password_malformed_hash(self):
        assert check_password("not-a-bcrypt-hash", "Secret1!") is False

    @pytest.mark.asyncio
    async def test_verify_password(self, db: Session):
        directory = UserDirectory(db)
        hashed = hash_password("Secret1!")

        assert await directory.verify_password(hashed, "Secret1!") is True
        assert await directory.verify_password(hashed, "Secret2!") is False
        assert await directory.verify_password("", "Secret1!") is False


class TestLookup:
    """Tests for finding accounts."""

    @pytest.mark.asyncio
    async def test_find_by_username(self, db: Session):
        user = create_user(db, username="alice", email="a@x.com")

        found = await UserDirectory(db).find_by_login("alice")

        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_find_by_email(self, db: Session):
        user = create_user(db, username="alice", email="a@x.com")

        found = await UserDirectory(db).find_by_login("a@x.com")

        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_find_by_id(self, db: Session):
        user = create_user(db)
        directory = UserDirectory(db)

        assert (await directory.find_by_id(user.id)).id == user.id

    @pytest.mark.asyncio
    async def test_login_does_not_match_user_id(self, db: Session):
        user = create_user(db)

        assert await UserDirectory(db).find_by_login(user.id) is None

    @pytest.mark.asyncio
    async def test_find_by_email_ignores_case(self, db: Session):
        user = create_user(db, username="alice", email="a@x.com")

        found = await UserDirectory(db).find_by_login("A@X.Com")

        assert found.id == user.id

    @pytest.mark.asyncio
    async def test_find_nonexistent(self, db: Session):
        create_user(db, username="alice")
        directory = UserDirectory(db)

        assert await directory.find_by_login("bob") is None
        assert await directory.find_by_id("00000000-0000-0000-0000-000000000000") is None

    @pytest.mark.asyncio
    async def test_uniqueness_checks(self, db: Session):
        create_user(db, username="alice", email="a@x.com")
        directory = UserDirectory(db)

        assert await directory.is_username_taken("alice") is True
        assert await directory.is_username_taken("bob") is False
        assert await directory.is_email_taken("a@x.com") is True
        assert await directory.is_email_taken("A@x.COM") is True
        assert await directory.is_email_taken("b@x.com") is False


class TestCreate:
    """Tests for account registration."""

    @pytest.mark.asyncio
    async def test_create_user(self, db: Session):
        data = CreateUserInput(username="alice", email="a@x.com", password="Secret1!")

        user = await UserDirectory(db).create(data)

        assert user.id is not None
        assert user.username == "alice"
        assert user.email == "a@x.com"
        assert user.display_name == "alice"
        assert user.password_hash != "Secret1!"
        assert check_password(user.password_hash, "Secret1!")
        assert db.query(User).count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_username(self, db: Session):
        create_user(db, username="alice", email="a@x.com")
        data = CreateUserInput(username="alice", email="other@x.com", password="Secret1!")

        with pytest.raises(ConflictError) as exc_info:
            await UserDirectory(db).create(data)

        assert exc_info.value.detail == "This username is already taken."

    @pytest.mark.asyncio
    async def test_duplicate_email(self, db: Session):
        create_user(db, username="alice", email="a@x.com")
        data = CreateUserInput(username="alice2", email="a@x.com", password="Secret1!")

        with pytest.raises(ConflictError) as exc_info:
            await UserDirectory(db).create(data)

        assert exc_info.value.detail == "This email is already taken."

    @pytest.mark.asyncio
    async def test_email_stored_lower_case(self, db: Session):
        data = CreateUserInput(username="bob", email="Bob@Example.COM", password="Secret1!")

        user = await UserDirectory(db).create(data)

        assert user.email == "bob@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email_differing_in_case(self, db: Session):
        create_user(db, username="bob", email="bob@example.com")
        data = CreateUserInput(username="bob2", email="BOB@example.com", password="Secret1!")

        with pytest.raises(ConflictError):
            await UserDirectory(db).create(data)


class TestInputValidation:
    """Tests for registration and login input rules."""

    @pytest.mark.parametrize(
        "password",
        ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial11", "Bad char1!#"],
    )
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError):
            CreateUserInput(username="alice", email="a@x.com", password=password)

    @pytest.mark.parametrize("username", ["", "-alice", "alice-", "al--ice", "al ice", "alice_1"])
    def test_bad_usernames_rejected(self, username):
        with pytest.raises(ValidationError):
            CreateUserInput(username=username, email="a@x.com", password="Secret1!")

    def test_hyphenated_username_accepted(self):
        data = CreateUserInput(username="alice-b-2", email="a@x.com", password="Secret1!")

        assert data.username == "alice-b-2"

    def test_bad_email_rejected(self):
        with pytest.raises(ValidationError):
            CreateUserInput(username="alice", email="not-an-email", password="Secret1!")

    def test_login_input_has_no_complexity_rule(self):
        data = LoginInput(login="alice", password="x")

        assert data.password == "x"

    @pytest.mark.parametrize("field", ["login", "password"])
    def test_login_input_requires_values(self, field):
        values = {"login": "alice", "password": TEST_PASSWORD, field: ""}

        with pytest.raises(ValidationError):
            LoginInput(**values)
