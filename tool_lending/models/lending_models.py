from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.base import Base


class Category(Base):
    __tablename__ = "Categories"

    CategoryID = Column(Integer, primary_key=True)
    Name = Column(String(100), nullable=False, unique=True)
    Description = Column(String(500))
    CreatedDate = Column(DateTime, server_default=func.now())

    Tools = relationship("Tool", back_populates="Category")


class Tool(Base):
    __tablename__ = "Tools"

    ToolID = Column(Integer, primary_key=True)
    Title = Column(String(255), nullable=False)
    Description = Column(String(2000))
    CategoryID = Column(Integer, ForeignKey("Categories.CategoryID"))
    WeeklyPrice = Column(Numeric(10, 2), nullable=False, default=0)
    PurchasePrice = Column(Numeric(10, 2))
    PurchaseDate = Column(Date)
    Status = Column(String(20), nullable=False, default="available")
    LastMaintenanceDate = Column(Date)
    MaintenanceInterval = Column(Integer)
    MaintenanceImportance = Column(String(10), nullable=False, default="low")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Category = relationship("Category", back_populates="Tools")
    Rentals = relationship("Rental", back_populates="Tool")


class User(Base):
    __tablename__ = "Users"

    UserID = Column(Integer, primary_key=True)
    Name = Column(String(255), nullable=False)
    Email = Column(String(255), nullable=False, unique=True)
    Phone = Column(String(50))
    BadgeNumber = Column(String(50), nullable=False, unique=True)
    Employer = Column(String(255))
    Role = Column(String(20), nullable=False, default="member")
    Status = Column(String(20), nullable=False, default="active")
    MembershipExpiry = Column(Date)
    TotalDebt = Column(Numeric(10, 2), nullable=False, default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Rentals = relationship("Rental", back_populates="User")
    Transactions = relationship("Transaction", back_populates="User")


class Rental(Base):
    __tablename__ = "Rentals"

    RentalID = Column(Integer, primary_key=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    ToolID = Column(Integer, ForeignKey("Tools.ToolID"), nullable=False)
    StartDate = Column(Date, nullable=False)
    EndDate = Column(Date, nullable=False)
    ActualReturnDate = Column(Date)
    Status = Column(String(20), nullable=False, default="pending")
    TotalPrice = Column(Numeric(10, 2))
    PriceOverridden = Column(Boolean, default=False)
    ReturnComment = Column(String(1000))
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    User = relationship("User", back_populates="Rentals")
    Tool = relationship("Tool", back_populates="Rentals")
    Transactions = relationship("Transaction", back_populates="Rental")


class Transaction(Base):
    __tablename__ = "Transactions"

    TransactionID = Column(Integer, primary_key=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    RentalID = Column(Integer, ForeignKey("Rentals.RentalID"))
    Amount = Column(Numeric(10, 2), nullable=False)
    Type = Column(String(20), nullable=False)
    Status = Column(String(10), nullable=False, default="pending")
    Method = Column(String(10))
    TransactionDate = Column(Date, nullable=False)
    Description = Column(String(500))
    PaidDate = Column(Date)
    CreatedDate = Column(DateTime, server_default=func.now())

    User = relationship("User", back_populates="Transactions")
    Rental = relationship("Rental", back_populates="Transactions")


class MembershipRenewal(Base):
    __tablename__ = "MembershipRenewals"

    RenewalID = Column(Integer, primary_key=True)
    UserID = Column(Integer, ForeignKey("Users.UserID"), nullable=False)
    AdminID = Column(Integer)
    PreviousExpiry = Column(Date)
    NewExpiry = Column(Date, nullable=False)
    Amount = Column(Numeric(10, 2), nullable=False)
    PaymentMethod = Column(String(10))
    CreatedDate = Column(DateTime, server_default=func.now())


class AuditLog(Base):
    __tablename__ = "AuditLogs"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(Integer, nullable=False)
    Action = Column(String(100), nullable=False)
    Details = Column(String(2000))
    UserID = Column(Integer)
    CreatedAt = Column(DateTime, server_default=func.now())


class NotificationQueue(Base):
    __tablename__ = "NotificationQueue"

    NotificationID = Column(Integer, primary_key=True)
    RentalID = Column(Integer)
    UserID = Column(Integer)
    NotificationType = Column(String(50), nullable=False)
    Payload = Column(String(2000))
    CreatedAt = Column(DateTime, server_default=func.now())
    SentAt = Column(DateTime)
