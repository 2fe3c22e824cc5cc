from datetime import datetime
from sqlalchemy import (Column, Integer, String, Text, DateTime, ForeignKey,
                        JSON, UniqueConstraint)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _iso(dt):
    return dt.isoformat() if dt else None


def _amount(cents):
    return round((cents or 0) / 100, 2)


# ----------------- CATALOG (sections -> subsections -> products) -----------------
class Section(Base):
    __tablename__ = "sections"
    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    cover_image = Column(String(512))  # storage key, or a full URL after migration
    parent_id = Column(Integer, ForeignKey("sections.id"))  # NULL for a main section
    created_at = Column(DateTime, default=datetime.utcnow)
    parent = relationship("Section", remote_side=[id], back_populates="children")
    children = relationship("Section", back_populates="parent", cascade="all, delete-orphan",
                            order_by="Section.id")
    products = relationship("Product", back_populates="section", cascade="all, delete-orphan",
                            order_by="Product.id")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "coverImage": self.cover_image,
            "parentId": self.parent_id,
            "createdAt": _iso(self.created_at),
        }


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    price_cents = Column(Integer, nullable=False, default=0)
    images = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    section = relationship("Section", back_populates="products")
    cart_items = relationship("CartItem", back_populates="product", cascade="all, delete-orphan")
    wishlist_items = relationship("WishlistItem", back_populates="product", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")
    # no cascade: order history keeps its rows, product_id is nulled
    order_items = relationship("OrderItem", back_populates="product")

    @property
    def price(self):
        return _amount(self.price_cents)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "images": list(self.images or []),
            "tags": list(self.tags or []),
            "sectionId": self.section_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# ----------------- CUSTOMERS -----------------
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(200))
    email = Column(String(200), unique=True, nullable=False)
    password_hash = Column(String(200), nullable=False)
    mobno = Column(String(32))
    address = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")
    reviews = relationship("Review", back_populates="user")
    wishlist_items = relationship("WishlistItem", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self):
        # never exposes password_hash
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "mobno": self.mobno,
            "address": self.address,
            "createdAt": _iso(self.created_at),
        }


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="cart_items")
    product = relationship("Product", back_populates="cart_items")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "createdAt": _iso(self.created_at),
        }


# ----------------- ORDERS -----------------
class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_cents = Column(Integer, nullable=False, default=0)
    status = Column(String(50), nullable=False, default="pending")  # pending|paid|cancelled
    payment_status = Column(String(50), nullable=False, default="pending")  # pending|captured|failed
    payment_intent_id = Column(String(128), index=True)
    payment_id = Column(String(128))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")

    @property
    def total_amount(self):
        return _amount(self.total_cents)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "totalAmount": self.total_amount,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "paymentIntentId": self.payment_intent_id,
            "paymentId": self.payment_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"))
    quantity = Column(Integer, nullable=False, default=1)
    price_cents = Column(Integer, nullable=False, default=0)  # unit price at checkout
    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")

    @property
    def price(self):
        return _amount(self.price_cents)

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "price": self.price,
        }


# ----------------- REVIEWS / WISHLIST -----------------
class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_review_user_product"),)
    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    message = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    product = relationship("Product", back_populates="reviews")
    user = relationship("User", back_populates="reviews")

    def to_dict(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "userId": self.user_id,
            "rating": self.rating,
            "message": self.message,
            "createdAt": _iso(self.created_at),
        }


class WishlistItem(Base):
    __tablename__ = "wishlist_items"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="wishlist_items")
    product = relationship("Product", back_populates="wishlist_items")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "createdAt": _iso(self.created_at),
        }
