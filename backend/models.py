"""SQLAlchemy Models for the InPulse dashboard"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, Float, Boolean, Text, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base

def generate_uuid():
    return str(uuid.uuid4())

def utc_now():
    return datetime.now(timezone.utc)

# Users table (each user is a tenant; all dashboard rows are scoped to it)
class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utc_now)

    team_members = relationship('TeamMember', back_populates='tenant', foreign_keys='TeamMember.tenant_id', cascade='all, delete-orphan')
    sales = relationship('Sale', back_populates='tenant', cascade='all, delete-orphan')
    campaigns = relationship('Campaign', back_populates='tenant', cascade='all, delete-orphan')
    tasks = relationship('Task', back_populates='tenant', cascade='all, delete-orphan')
    products = relationship('Product', back_populates='tenant', cascade='all, delete-orphan')
    journeys = relationship('CustomerJourney', back_populates='tenant', cascade='all, delete-orphan')

# Team members (headcount for burnout ratio)
class TeamMember(Base):
    __tablename__ = 'team_members'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(50), default='Member')
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='team_members', foreign_keys=[tenant_id])

    __table_args__ = (
        UniqueConstraint('tenant_id', 'user_id', name='uq_team_members_tenant_user'),
    )

# Products
class Product(Base):
    __tablename__ = 'products'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sale_price = Column(Float, default=0)
    cost_per_unit = Column(Float, default=0)
    inventory_level = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='products')
    sales = relationship('Sale', back_populates='product')

# Sales (one row per transaction)
class Sale(Base):
    __tablename__ = 'sales'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='SET NULL'))
    revenue = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='sales')
    product = relationship('Product', back_populates='sales')

    __table_args__ = (
        Index('ix_sales_tenant_created', 'tenant_id', 'created_at'),
    )

# Ad campaigns
class Campaign(Base):
    __tablename__ = 'campaigns'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    campaign_name = Column(String(255))
    platform = Column(String(50))
    reach = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    conversions = Column(Integer, default=0)
    spend = Column(Float, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='campaigns')

    __table_args__ = (
        Index('ix_campaigns_tenant_created', 'tenant_id', 'created_at'),
    )

# Kanban tasks
class Task(Base):
    __tablename__ = 'tasks'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    content = Column(Text, nullable=False)
    status = Column(String(20), default='TODO')  # TODO, INPROGRESS, DONE
    priority = Column(String(20), default='medium')  # low, medium, high
    due_date = Column(DateTime(timezone=True))
    assignee_id = Column(String(36))
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='tasks')

    __table_args__ = (
        Index('ix_tasks_tenant_status', 'tenant_id', 'status'),
    )

# Customer journeys (one per tracked customer path)
class CustomerJourney(Base):
    __tablename__ = 'customer_journeys'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id = Column(String(255))
    conversion = Column(Boolean, default=False)
    conversion_value = Column(Float, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    tenant = relationship('User', back_populates='journeys')
    touchpoints = relationship('Touchpoint', back_populates='journey', cascade='all, delete-orphan')

# Journey touchpoints (tenant_id denormalized so every query stays tenant-scoped)
class Touchpoint(Base):
    __tablename__ = 'touchpoints'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    journey_id = Column(String(36), ForeignKey('customer_journeys.id', ondelete='CASCADE'), nullable=False, index=True)
    platform = Column(String(50), nullable=False)
    action = Column(String(255))
    timestamp = Column(DateTime(timezone=True), default=utc_now)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    journey = relationship('CustomerJourney', back_populates='touchpoints')
