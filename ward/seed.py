import argparse
import logging
import random

from faker import Faker

from ward.config import LOGGER_NAME, Settings, setup_logging
from ward.models import AdmissionRequest

logger = logging.getLogger(LOGGER_NAME)

Faker.seed(42)

fake = Faker("en_US")
diagnosis_generator = random.Random()
diagnosis_generator.seed(45)

common_diagnoses = [
    "chest pain",
    "shortness of breath",
    "abdominal pain",
    "fever",
    "syncope",
    "laceration",
    "asthma exacerbation",
    "urinary tract infection",
    "dehydration",
    "migraine",
]


def generate_fake_admission() -> AdmissionRequest:
    return AdmissionRequest(
        name=fake.name(),
        mrn=fake.unique.numerify("MRN-######"),
        diagnosis=diagnosis_generator.choice(common_diagnoses),
    )


def seed_ward(store, count: int) -> list[int]:
    """
    Admit fake patients into the lowest-numbered empty beds.
    :param store: Bed store to fill.
    :param count: How many patients to admit, capped by the free beds.
    :return: Ids of the beds that were filled.
    """
    filled = []
    for bed_id in store.list_empty_beds()[:count]:
        store.admit(bed_id, generate_fake_admission())
        filled.append(bed_id)
    if len(filled) < count:
        logger.warning(f"Only {len(filled)} empty beds available, {count} requested")
    return filled


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Fill the ward with fake patients for demos.")
    parser.add_argument("--count", type=int, default=5, help="number of patients to admit")
    args = parser.parse_args(argv)

    setup_logging()
    # Imported here so the FastAPI app is not pulled in by the generator alone
    from ward.main import build_store

    store = build_store(Settings.from_env())
    try:
        filled = seed_ward(store, args.count)
        logger.info(f"Seeded beds {filled}")
    finally:
        store.dispatcher.wait()
        store.dispatcher.close()


if __name__ == "__main__":
    main()
