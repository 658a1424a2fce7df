from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ColeccionPersistida',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('creado_en', models.DateTimeField(auto_now_add=True)),
                ('actualizado_en', models.DateTimeField(auto_now=True)),
                ('nombre', models.CharField(max_length=80, unique=True)),
                ('contenido', models.TextField(blank=True, default='')),
            ],
            options={
                'verbose_name': 'Colección persistida',
                'verbose_name_plural': 'Colecciones persistidas',
                'ordering': ['nombre'],
            },
        ),
    ]
