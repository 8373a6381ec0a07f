import uuid
from typing import List, Optional

from database import JsonStore, parse_record
from errors import Conflict
from logger import logger
from schemas import Role, User, UserCreate, UserPublic
from security import DEFAULT_ROUNDS, hash_password, verify_password

USERS_FILE = "users.json"


def new_id() -> str:
    return uuid.uuid4().hex


class UserDirectory:
    def __init__(self, store: JsonStore, bcrypt_rounds: int = DEFAULT_ROUNDS):
        self.store = store
        self.path = store.path(USERS_FILE)
        self.bcrypt_rounds = bcrypt_rounds

    def initialize(self) -> None:
        self.store.ensure_file(self.path, [])

    def list(self) -> List[User]:
        return [parse_record(User, doc, self.path) for doc in self.store.load(self.path, expect=list)]

    def get(self, user_id: str) -> Optional[User]:
        return next((u for u in self.list() if u.id == user_id), None)

    def find_by_name(self, name: str) -> Optional[User]:
        return next((u for u in self.list() if u.name == name), None)

    def create(self, data: UserCreate) -> UserPublic:
        # Hash outside the lock; bcrypt is deliberately slow.
        password_hash = hash_password(data.password, rounds=self.bcrypt_rounds)
        user = User(
            id=new_id(),
            name=data.name,
            email=data.email,
            role=data.role or Role.USER,
            password_hash=password_hash,
        )
        with self.store.update(self.path, expect=list) as users:
            if any(doc.get("name") == user.name for doc in users):
                raise Conflict(f"User {user.name!r} already exists")
            users.append(user.to_document())
        logger.info("User created", extra={"user_id": user.id, "role": user.role.value})
        return user.public()

    def delete(self, user_id: str) -> None:
        with self.store.update(self.path, expect=list) as users:
            remaining = [doc for doc in users if doc.get("id") != user_id]
            removed = len(users) - len(remaining)
            users[:] = remaining
        if removed:
            logger.info("User deleted", extra={"user_id": user_id})

    def authenticate(self, name: str, password: str) -> Optional[User]:
        user = self.find_by_name(name)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user

    def ensure_admin(self, name: str, password: str) -> Optional[UserPublic]:
        """Create the bootstrap admin unless a user with that name exists."""
        if self.find_by_name(name) is not None:
            return None
        try:
            return self.create(UserCreate(name=name, password=password, role=Role.ADMIN))
        except Conflict:
            return None
