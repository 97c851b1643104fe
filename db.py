import os
from pathlib import Path
from dotenv import load_dotenv
from datetime import datetime
from sqlalchemy import create_engine, Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///./app.db')

# Chaves de regras de preço usadas pelo cálculo
REGRA_COMISSAO = 'dorata_commission_percent'
REGRA_PARAMS_CALCULO = 'proposal_calc_params'


def _build_connect_args(url: str) -> dict:
    # SQLite needs check_same_thread flag
    if url.startswith('sqlite'):
        return {"check_same_thread": False}

    # Postgres (incl. Supabase) with SSL
    if url.startswith('postgresql'):
        sslmode = os.getenv('PGSSLMODE', 'verify-full')
        default_ca = Path(__file__).parent / 'certs' / 'prod-ca-2021.crt'
        ca_path = os.getenv('PGSSLROOTCERT') or os.getenv('SUPABASE_CA_CERT') or str(default_ca)
        args = {"sslmode": sslmode}
        if Path(ca_path).exists():
            args["sslrootcert"] = ca_path
        return args

    return {}


engine = create_engine(
    DATABASE_URL,
    connect_args=_build_connect_args(DATABASE_URL),
    future=True,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
Base = declarative_base()


class RegraPrecoDB(Base):
    __tablename__ = 'regras_preco'

    key = Column(String(128), primary_key=True)
    value = Column(JSON)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'value': self.value,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


def init_db():
    Base.metadata.create_all(bind=engine)


def listar_regras(db) -> list:
    return [r.to_dict() for r in db.query(RegraPrecoDB).order_by(RegraPrecoDB.key).all()]


def obter_regra(db, key: str, default=None):
    row = db.get(RegraPrecoDB, key)
    if row is None or row.value is None:
        return default
    return row.value


def salvar_regra(db, key: str, value) -> RegraPrecoDB:
    row = db.get(RegraPrecoDB, key)
    if row is None:
        row = RegraPrecoDB(key=key, value=value)
        db.add(row)
    else:
        row.value = value
        row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return row
