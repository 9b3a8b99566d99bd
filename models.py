from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    DateTime,
    Boolean,
    Index,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import relationship
from db import Base


# -------------------------------------------------
# GRADING STATUSES (wire values)
# -------------------------------------------------
STATUS_UNKNOWN = "onbekend"
STATUS_CORRECT = "goed"
STATUS_TYPO = "typfout"
STATUS_WRONG = "fout"


# -------------------------------------------------
# CLASS MODEL
# -------------------------------------------------
class ClassGroup(Base):
    __tablename__ = "klassen"

    id = Column(Integer, primary_key=True, index=True)
    # teachers live in the external identity service, no FK
    docent_id = Column(Integer, nullable=False, index=True)
    naam = Column(String(255), nullable=False)
    klascode = Column(String(10), unique=True, nullable=False, index=True)
    vak = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # relationships
    students = relationship("Student", back_populates="klas", cascade="all, delete-orphan")
    question_lists = relationship("QuestionList", back_populates="klas", cascade="all, delete-orphan")
    questions = relationship("Question", back_populates="klas", cascade="all, delete-orphan")
    sessions = relationship("QuizSession", back_populates="klas", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ClassGroup(id={self.id}, naam='{self.naam}', klascode='{self.klascode}')>"


# -------------------------------------------------
# STUDENT MODEL
# -------------------------------------------------
class Student(Base):
    __tablename__ = "leerlingen"

    id = Column(Integer, primary_key=True, index=True)
    klas_id = Column(Integer, ForeignKey("klassen.id", ondelete="CASCADE"), nullable=False, index=True)
    naam = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    klas = relationship("ClassGroup", back_populates="students")
    results = relationship("Result", back_populates="student", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Student(id={self.id}, naam='{self.naam}')>"


# -------------------------------------------------
# QUESTION LIST MODEL
# -------------------------------------------------
class QuestionList(Base):
    __tablename__ = "vragenlijsten"

    id = Column(Integer, primary_key=True, index=True)
    klas_id = Column(Integer, ForeignKey("klassen.id", ondelete="CASCADE"), nullable=False, index=True)
    naam = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    klas = relationship("ClassGroup", back_populates="question_lists")
    # most recent first
    questions = relationship(
        "Question",
        back_populates="question_list",
        cascade="all, delete-orphan",
        order_by="desc(Question.id)",
    )

    def __repr__(self):
        return f"<QuestionList(id={self.id}, naam='{self.naam}')>"


# -------------------------------------------------
# QUESTION MODEL
# -------------------------------------------------
class Question(Base):
    __tablename__ = "vragen"

    id = Column(Integer, primary_key=True, index=True)
    klas_id = Column(Integer, ForeignKey("klassen.id", ondelete="CASCADE"), nullable=False, index=True)
    vragenlijst_id = Column(
        Integer, ForeignKey("vragenlijsten.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vraag = Column(Text, nullable=False)
    antwoord = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    klas = relationship("ClassGroup", back_populates="questions")
    question_list = relationship("QuestionList", back_populates="questions")
    results = relationship("Result", back_populates="question", cascade="all, delete-orphan")
    dispatches = relationship("SessionQuestion", back_populates="question", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Question(id={self.id}, vraag='{self.vraag[:30]}')>"


# -------------------------------------------------
# SESSION MODEL
# -------------------------------------------------
class QuizSession(Base):
    __tablename__ = "sessies"
    __table_args__ = (
        # at most one active session per class
        Index(
            "uq_sessies_active_klas",
            "klas_id",
            unique=True,
            sqlite_where=text("actief = 1"),
            postgresql_where=text("actief IS TRUE"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    klas_id = Column(Integer, ForeignKey("klassen.id", ondelete="CASCADE"), nullable=False, index=True)
    docent_id = Column(Integer, nullable=False, index=True)
    vragenlijst_id = Column(Integer, ForeignKey("vragenlijsten.id", ondelete="CASCADE"), nullable=False)
    actief = Column(Boolean, default=True, nullable=False)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    ended_at = Column(DateTime(timezone=True))
    current_question_id = Column(Integer, ForeignKey("vragen.id", ondelete="SET NULL"))
    question_start_time = Column(DateTime(timezone=True))

    klas = relationship("ClassGroup", back_populates="sessions")
    question_list = relationship("QuestionList")
    current_question = relationship("Question", foreign_keys=[current_question_id])
    results = relationship("Result", back_populates="session", cascade="all, delete-orphan")
    dispatches = relationship("SessionQuestion", back_populates="session", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<QuizSession(id={self.id}, klas_id={self.klas_id}, actief={self.actief})>"


# -------------------------------------------------
# DISPATCH LOG (questions sent during a session)
# -------------------------------------------------
class SessionQuestion(Base):
    __tablename__ = "sessie_vragen"
    __table_args__ = (UniqueConstraint("sessie_id", "vraag_id", name="uq_sessie_vragen"),)

    id = Column(Integer, primary_key=True, index=True)
    sessie_id = Column(Integer, ForeignKey("sessies.id", ondelete="CASCADE"), nullable=False, index=True)
    vraag_id = Column(Integer, ForeignKey("vragen.id", ondelete="CASCADE"), nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("QuizSession", back_populates="dispatches")
    question = relationship("Question", back_populates="dispatches")

    def __repr__(self):
        return f"<SessionQuestion(sessie_id={self.sessie_id}, vraag_id={self.vraag_id})>"


# -------------------------------------------------
# RESULT MODEL
# -------------------------------------------------
class Result(Base):
    __tablename__ = "resultaten"
    __table_args__ = (
        UniqueConstraint("sessie_id", "vraag_id", "leerling_id", name="uq_resultaten_answer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sessie_id = Column(Integer, ForeignKey("sessies.id", ondelete="CASCADE"), nullable=False, index=True)
    leerling_id = Column(Integer, ForeignKey("leerlingen.id", ondelete="CASCADE"), nullable=False, index=True)
    vraag_id = Column(Integer, ForeignKey("vragen.id", ondelete="CASCADE"), nullable=False)
    antwoord_given = Column(Text, nullable=False)
    status = Column(String(20), default=STATUS_UNKNOWN, nullable=False)
    points = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("QuizSession", back_populates="results")
    student = relationship("Student", back_populates="results")
    question = relationship("Question", back_populates="results")

    def __repr__(self):
        return f"<Result(leerling_id={self.leerling_id}, vraag_id={self.vraag_id}, status='{self.status}')>"
