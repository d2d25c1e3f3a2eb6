"""
Serviço de Importação de Dados
Importa planilhas (Excel ou CSV) do rebanho e do histórico reprodutivo:
- Adiciona novos registros
- Atualiza registros existentes apenas se mudaram
- Mantém histórico de importações
"""

import hashlib
import json
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Optional

import pandas as pd
from sqlalchemy.orm import Session

from backend.models.database import Animal, BreedingEvent, ImportHistory, LactationCycle
from backend.models.domain import BirthType, EventStatus, Sex, Technique

logger = logging.getLogger(__name__)

DEFAULT_LACTATION_DAYS = 305


class DataImporter:
    """Importador inteligente de dados"""

    def __init__(self, db_session: Session):
        self.session = db_session

    # ========================================================================
    # IMPORTAÇÃO DE ANIMAIS
    # ========================================================================

    def import_animals(self, path: str, user: str = 'Sistema') -> Dict:
        """
        Importa o cadastro do rebanho

        Colunas: BRINCO, NOME, SEXO, NASCIMENTO, RACA, PROPRIEDADE, ATIVO
        Um animal é identificado por BRINCO + PROPRIEDADE.
        """
        logger.info("Importando animais de: %s", path)
        stats = {'added': 0, 'updated': 0, 'unchanged': 0, 'errors': []}

        try:
            df = self._read_table(path)
            logger.info("  Lidas %d linhas", len(df))

            for idx, row in df.iterrows():
                try:
                    tag = self._safe_str(row.get('BRINCO'))
                    if not tag:
                        continue

                    sex = self._safe_str(row.get('SEXO'))
                    data = {
                        'tag': tag,
                        'name': self._safe_str(row.get('NOME')) or tag,
                        'sex': Sex((sex or '').upper()).value,
                        'birth_date': self._safe_date(row.get('NASCIMENTO')),
                        'breed': self._safe_str(row.get('RACA')),
                        'property_id': self._safe_int(row.get('PROPRIEDADE')),
                        'is_active': self._safe_bool(row.get('ATIVO'), default=True),
                    }

                    existing = self.session.query(Animal).filter_by(
                        tag=tag, property_id=data['property_id']
                    ).first()

                    if existing:
                        current = {key: getattr(existing, key) for key in data}
                        if self._hash_dict(current) != self._hash_dict(data):
                            for key, value in data.items():
                                setattr(existing, key, value)
                            stats['updated'] += 1
                        else:
                            stats['unchanged'] += 1
                    else:
                        self.session.add(Animal(**data))
                        stats['added'] += 1

                except Exception as e:
                    stats['errors'].append(f"Linha {idx}: {str(e)}")
                    continue

            self.session.commit()
            self._log_import('animals', path, stats, user)
            self._report(stats)
            return stats

        except Exception:
            self.session.rollback()
            logger.exception("Erro na importação de animais")
            raise

    # ========================================================================
    # IMPORTAÇÃO DE HISTÓRICO REPRODUTIVO
    # ========================================================================

    def import_breeding_events(self, path: str, user: str = 'Sistema') -> Dict:
        """
        Importa coberturas históricas (sem validação de aptidão, são fatos passados)

        Colunas: BRINCO_FEMEA, BRINCO_MACHO, ID_MATERIAL, TECNICA, DATA_EVENTO,
                 TIPO_PARTO, DATA_PARTO, STATUS, PROPRIEDADE

        Partos Normal/Cesárea também geram o ciclo de lactação correspondente.
        """
        logger.info("Importando coberturas de: %s", path)
        stats = {'added': 0, 'updated': 0, 'unchanged': 0, 'errors': []}

        try:
            df = self._read_table(path)
            logger.info("  Lidas %d linhas", len(df))

            for idx, row in df.iterrows():
                try:
                    property_id = self._safe_int(row.get('PROPRIEDADE'))
                    female = self._find_animal(self._safe_str(row.get('BRINCO_FEMEA')), property_id)
                    if female is None:
                        raise ValueError(f"Fêmea {row.get('BRINCO_FEMEA')} não cadastrada")

                    male_tag = self._safe_str(row.get('BRINCO_MACHO'))
                    male = self._find_animal(male_tag, property_id) if male_tag else None
                    if male_tag and male is None:
                        raise ValueError(f"Macho {male_tag} não cadastrado")

                    event_date = self._safe_date(row.get('DATA_EVENTO'))
                    if event_date is None:
                        raise ValueError("DATA_EVENTO obrigatória")

                    birth_type = self._safe_str(row.get('TIPO_PARTO'))
                    birth_type = BirthType(birth_type).value if birth_type else None
                    birth_date = self._safe_date(row.get('DATA_PARTO'))
                    if birth_type and birth_date is None:
                        raise ValueError("DATA_PARTO obrigatória quando há TIPO_PARTO")

                    status = self._safe_str(row.get('STATUS'))
                    if birth_type:
                        status = EventStatus.COMPLETED.value
                    else:
                        status = EventStatus(status).value if status else EventStatus.IN_PROGRESS.value
                        if status == EventStatus.COMPLETED.value:
                            raise ValueError("Cobertura Concluída exige TIPO_PARTO e DATA_PARTO")

                    data = {
                        'female_id': female.id,
                        'male_id': male.id if male else None,
                        'material_id': self._safe_int(row.get('ID_MATERIAL')),
                        'technique': Technique(self._safe_str(row.get('TECNICA'))).value,
                        'event_date': event_date,
                        'status': status,
                        'birth_type': birth_type,
                        'birth_date': birth_date if birth_type else None,
                        'property_id': property_id if property_id is not None else female.property_id,
                    }

                    existing = self.session.query(BreedingEvent).filter_by(
                        female_id=female.id, event_date=event_date
                    ).first()

                    if existing:
                        current = {key: getattr(existing, key) for key in data}
                        if self._hash_dict(current) != self._hash_dict(data):
                            for key, value in data.items():
                                setattr(existing, key, value)
                            stats['updated'] += 1
                        else:
                            stats['unchanged'] += 1
                        event = existing
                    else:
                        event = BreedingEvent(**data)
                        self.session.add(event)
                        stats['added'] += 1

                    if birth_type and BirthType(birth_type).is_live:
                        self._ensure_cycle(event, birth_date)

                except Exception as e:
                    stats['errors'].append(f"Linha {idx}: {str(e)}")
                    continue

            self.session.commit()
            self._log_import('breeding_events', path, stats, user)
            self._report(stats)
            return stats

        except Exception:
            self.session.rollback()
            logger.exception("Erro na importação de coberturas")
            raise

    def _ensure_cycle(self, event: BreedingEvent, parturition_date: date):
        """Cria o ciclo de lactação do parto, se ainda não existir"""
        self.session.flush()
        exists = self.session.query(LactationCycle).filter_by(
            female_id=event.female_id, parturition_date=parturition_date
        ).first()
        if exists:
            return
        self.session.add(LactationCycle(
            female_id=event.female_id,
            breeding_event_id=event.id,
            parturition_date=parturition_date,
            standard_days=DEFAULT_LACTATION_DAYS,
            expected_dry_off_date=parturition_date + timedelta(days=DEFAULT_LACTATION_DAYS),
        ))

    def _find_animal(self, tag: Optional[str], property_id: Optional[int]) -> Optional[Animal]:
        if not tag:
            return None
        query = self.session.query(Animal).filter(Animal.tag == tag, Animal.deleted_at.is_(None))
        if property_id is not None:
            query = query.filter(Animal.property_id == property_id)
        return query.first()

    # ========================================================================
    # UTILITÁRIOS
    # ========================================================================

    def _read_table(self, path: str) -> pd.DataFrame:
        if path.lower().endswith('.csv'):
            df = pd.read_csv(path, dtype=str)
        else:
            df = pd.read_excel(path, dtype=str)
        df.columns = [str(c).strip().upper() for c in df.columns]
        return df

    def _hash_dict(self, data: Dict) -> str:
        """Cria hash de um dicionário para detectar mudanças"""
        json_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(json_str.encode()).hexdigest()

    def _safe_str(self, value) -> Optional[str]:
        if value is None or pd.isna(value):
            return None
        text = str(value).strip()
        return text or None

    def _safe_int(self, value) -> Optional[int]:
        """Converte valor para int com segurança"""
        try:
            if value is None or pd.isna(value):
                return None
            return int(float(value))
        except (ValueError, TypeError):
            return None

    def _safe_bool(self, value, default: bool = True) -> bool:
        text = self._safe_str(value)
        if text is None:
            return default
        return text.lower() in ('1', 'true', 'sim', 's', 'yes')

    def _safe_date(self, value) -> Optional[date]:
        """Aceita ISO (2024-03-05) ou formato brasileiro (05/03/2024)"""
        text = self._safe_str(value)
        if text is None:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return pd.to_datetime(text, dayfirst=True).date()

    def _report(self, stats: Dict):
        logger.info("Importação concluída: %d adicionados, %d atualizados, %d sem mudanças, %d erros",
                    stats['added'], stats['updated'], stats['unchanged'], len(stats['errors']))

    def _log_import(self, import_type: str, filename: str, stats: Dict, user: str):
        """Registra importação no histórico"""
        log = ImportHistory(
            import_type=import_type,
            filename=filename,
            records_added=stats['added'],
            records_updated=stats['updated'],
            records_unchanged=stats['unchanged'],
            status='success' if not stats['errors'] else 'partial',
            error_log='\n'.join(stats['errors'][:100]) if stats['errors'] else None,
            imported_at=datetime.now(),
            imported_by=user
        )
        self.session.add(log)
        self.session.commit()
