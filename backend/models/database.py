"""
Modelos do Banco de Dados - Sistema de Reprodução
SQLAlchemy ORM Models
"""

from sqlalchemy import (create_engine, Column, Integer, String, Date, DateTime, Boolean,
                        ForeignKey, Text, UniqueConstraint)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime

Base = declarative_base()

# ============================================================================
# REBANHO
# ============================================================================

class Animal(Base):
    """Modelo para Búfalos (machos e fêmeas)"""
    __tablename__ = 'animals'

    id = Column(Integer, primary_key=True)
    name = Column(String(200))
    tag = Column(String(50), index=True)  # brinco
    sex = Column(String(1), index=True)  # M, F
    birth_date = Column(Date)
    breed = Column(String(50))
    property_id = Column(Integer, index=True)

    # Status
    is_active = Column(Boolean, default=True)
    deleted_at = Column(DateTime)

    # Metadata
    last_updated = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<Animal {self.id} - {self.name} ({self.sex})>"

    def to_dict(self):
        """Converter para dicionário"""
        return {
            'id': self.id,
            'name': self.name,
            'tag': self.tag,
            'sex': self.sex,
            'birth_date': self.birth_date.isoformat() if self.birth_date else None,
            'breed': self.breed,
            'property_id': self.property_id,
            'is_active': self.is_active,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
        }


class GeneticMaterial(Base):
    """Material genético (sêmen, embrião, óvulo)"""
    __tablename__ = 'genetic_materials'

    id = Column(Integer, primary_key=True)
    material_type = Column(String(20))  # Sêmen, Embrião, Óvulo
    is_active = Column(Boolean, default=True)

    # Origem: coleta própria (animal) ou compra (fornecedor)
    source_animal_id = Column(Integer, ForeignKey('animals.id'), index=True)
    supplier = Column(String(200))
    collected_on = Column(Date)

    source_animal = relationship('Animal', foreign_keys=[source_animal_id])

    def __repr__(self):
        return f"<GeneticMaterial {self.id}: {self.material_type}>"


# ============================================================================
# REPRODUÇÃO
# ============================================================================

class BreedingEvent(Base):
    """Coberturas / inseminações"""
    __tablename__ = 'breeding_events'

    id = Column(Integer, primary_key=True)
    property_id = Column(Integer, index=True)

    # Participantes
    female_id = Column(Integer, ForeignKey('animals.id'), index=True)
    male_id = Column(Integer, ForeignKey('animals.id'), index=True)  # monta natural
    material_id = Column(Integer, ForeignKey('genetic_materials.id'), index=True)  # IA, IATF, TE
    donor_id = Column(Integer, ForeignKey('animals.id'))  # doadora (TE)

    female = relationship('Animal', foreign_keys=[female_id])
    male = relationship('Animal', foreign_keys=[male_id])
    material = relationship('GeneticMaterial', foreign_keys=[material_id])

    technique = Column(String(20))  # IA, IATF, TE, Monta Natural
    event_date = Column(Date, index=True)

    # Status: Em andamento, Confirmada, Falhou, Concluída
    status = Column(String(20), default='Em andamento', index=True)
    expected_calving_date = Column(Date)

    # Parto (somente quando Concluída)
    birth_type = Column(String(20))  # Normal, Cesárea, Aborto
    birth_date = Column(Date)
    failed_on = Column(Date)
    notes = Column(Text)

    # Soft delete
    deleted_at = Column(DateTime)

    # Metadata
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<BreedingEvent {self.id}: Female {self.female_id} ({self.status})>"


class LactationCycle(Base):
    """Ciclos de lactação (criados a partir de partos)"""
    __tablename__ = 'lactation_cycles'

    id = Column(Integer, primary_key=True)
    female_id = Column(Integer, ForeignKey('animals.id'), index=True)
    breeding_event_id = Column(Integer, ForeignKey('breeding_events.id'))

    parturition_date = Column(Date, index=True)
    standard_days = Column(Integer, default=305)
    expected_dry_off_date = Column(Date)
    actual_dry_off_date = Column(Date)

    created_at = Column(DateTime, default=datetime.now)

    @property
    def status(self):
        return 'Seca' if self.actual_dry_off_date else 'Em Lactação'

    def __repr__(self):
        return f"<LactationCycle {self.id}: Female {self.female_id} - {self.parturition_date}>"


class Reminder(Base):
    """Lembretes de manejo (ex: secagem prevista)"""
    __tablename__ = 'reminders'
    __table_args__ = (
        UniqueConstraint('source_event_type', 'source_event_id', name='uq_reminder_source'),
    )

    id = Column(Integer, primary_key=True)
    animal_id = Column(Integer, ForeignKey('animals.id'), index=True)
    property_id = Column(Integer, index=True)
    due_date = Column(Date)
    reason = Column(Text)
    source_event_type = Column(String(50))
    source_event_id = Column(Integer)
    created_at = Column(DateTime, default=datetime.now)

    def __repr__(self):
        return f"<Reminder {self.id}: Animal {self.animal_id} - {self.due_date}>"


class ImportHistory(Base):
    """Histórico de Importações de Dados"""
    __tablename__ = 'import_history'

    id = Column(Integer, primary_key=True)
    import_type = Column(String(50))  # animals, breeding_events
    filename = Column(String(500))

    # Estatísticas
    records_added = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_unchanged = Column(Integer, default=0)

    # Status
    status = Column(String(50))  # success, partial
    error_log = Column(Text)

    # Metadata
    imported_at = Column(DateTime, default=datetime.now)
    imported_by = Column(String(100))

    def __repr__(self):
        return f"<Import {self.id}: {self.import_type} - {self.status}>"


# ============================================================================
# INICIALIZAÇÃO DO BANCO
# ============================================================================

def init_database(db_path='sqlite:///buffalo_breeding.db'):
    """
    Inicializa o banco de dados
    """
    if db_path in ('sqlite://', 'sqlite:///:memory:'):
        # Banco em memória compartilhado entre sessões
        engine = create_engine(db_path, echo=False,
                               connect_args={'check_same_thread': False},
                               poolclass=StaticPool)
    else:
        engine = create_engine(db_path, echo=False)
    Base.metadata.create_all(engine)
    return engine


def get_session(engine):
    """
    Cria uma sessão do banco
    """
    Session = sessionmaker(bind=engine)
    return Session()
