# camfleet agent — recording session lifecycle on the device side
