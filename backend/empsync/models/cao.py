"""
CAO Salary Scale Model
Dated hourly wages per scale/trede
"""

from sqlalchemy import Column, String, Integer, Float, Date, UniqueConstraint

from empsync.core.database import Base


class CaoSalaryScale(Base):
    """One row of the collective agreement salary grid (cao_salary_scales)"""

    __tablename__ = "cao_salary_scales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scale = Column(String(16), nullable=False)
    trede = Column(Integer, nullable=False)
    effective_date = Column(Date, nullable=False)
    hourly_wage = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("scale", "trede", "effective_date", name="uq_cao_scale_trede_date"),
    )
