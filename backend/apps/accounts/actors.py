# apps/accounts/actors.py


class Actor:
    """
    The party performing a dispatch action.

    One of four kinds: a customer (USER), a shop owner (SELLER), a platform
    admin (ADMIN) or the platform itself (SYSTEM). Ownership checks go through
    this object instead of comparing raw role flags at every call site.
    """
    USER = "user"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"

    KINDS = (USER, SELLER, ADMIN, SYSTEM)

    def __init__(self, kind, user=None):
        if kind not in self.KINDS:
            raise ValueError(f"Unknown actor kind: {kind}")
        if kind != self.SYSTEM and user is None:
            raise ValueError(f"Actor of kind '{kind}' needs a user")
        self.kind = kind
        self.user = user

    @classmethod
    def from_user(cls, user):
        if user.is_staff:
            return cls(cls.ADMIN, user)
        if user.has_role("seller"):
            return cls(cls.SELLER, user)
        return cls(cls.USER, user)

    @classmethod
    def system(cls):
        return cls(cls.SYSTEM)

    @property
    def id(self):
        return self.user.id if self.user else None

    @property
    def is_admin(self):
        return self.kind == self.ADMIN

    @property
    def is_system(self):
        return self.kind == self.SYSTEM

    def is_user(self, user_id):
        return self.user is not None and self.user.id == user_id

    def relation_to(self, owner_id, seller_id):
        """
        How this actor relates to a record owned by ``owner_id`` and fulfilled
        by ``seller_id``: 'admin', 'user', 'seller', or None when unrelated.
        """
        if self.is_admin or self.is_system:
            return self.kind
        if self.is_user(owner_id):
            return self.USER
        if self.is_user(seller_id):
            return self.SELLER
        return None

    def audit_user(self):
        return self.user

    def __eq__(self, other):
        return isinstance(other, Actor) and (self.kind, self.id) == (other.kind, other.id)

    def __hash__(self):
        return hash((self.kind, self.id))

    def __repr__(self):
        return f"<Actor {self.kind}:{self.id}>"
