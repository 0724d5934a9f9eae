from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Item(db.Model):
    """
    Catalogue item. Prices are integer minor currency units.

    Items stay editable after they have been ordered; orders keep their own
    snapshot of title/price/description/images.
    """
    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    image = db.Column(db.String(512), nullable=True)
    large_image = db.Column(db.String(512), nullable=True)
    price = db.Column(db.Integer, nullable=False)

    # Creator; ownership grants update/delete rights
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "large_image": self.large_image,
            "price": self.price,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
